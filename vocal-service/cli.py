import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from diagnosis import diagnose
from scoring import analyze_performance
from telemetry import compute_telemetry
from thresholds import (
    DEFAULT_DIAGNOSIS_CONFIG,
    DEFAULT_TELEMETRY_CONFIG,
    config_to_dict,
    diagnosis_config_from_dict,
    telemetry_config_from_dict,
)

DEFAULT_CONFIG: dict[str, Any] = {
    "telemetry": config_to_dict(DEFAULT_TELEMETRY_CONFIG),
    "diagnosis": config_to_dict(DEFAULT_DIAGNOSIS_CONFIG),
}


def _emit(event: dict[str, Any]) -> None:
    print(json.dumps(event), flush=True)


def _load_config(path: str | None) -> dict[str, Any]:
    if not path:
        return {k: dict(v) for k, v in DEFAULT_CONFIG.items()}
    with Path(path).open("r", encoding="utf-8-sig") as f:
        loaded = json.load(f)

    merged = {k: dict(v) for k, v in DEFAULT_CONFIG.items()}
    for section in ("telemetry", "diagnosis"):
        merged[section].update(loaded.get(section, {}))
    return merged


def _load_samples(path: str) -> list[dict[str, Any]]:
    """Samples file: either a bare list of frames or {"samples": [...]}."""
    with Path(path).open("r", encoding="utf-8-sig") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("samples", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of samples")
    return data


def cmd_analyze(args: argparse.Namespace) -> int:
    config = _load_config(args.config)

    try:
        samples = _load_samples(args.input)
        telemetry_cfg = telemetry_config_from_dict(config["telemetry"])
        diagnosis_cfg = diagnosis_config_from_dict(config["diagnosis"])

        session_telemetry = compute_telemetry(samples, args.duration, telemetry_cfg)
        vocal_diagnosis = diagnose(session_telemetry, diagnosis_cfg)
        quick = analyze_performance(samples)
    except Exception as exc:
        _emit({"event": "error", "message": str(exc)})
        return 1

    result = {
        "score": quick.score,
        "feedback": quick.feedback.model_dump(mode="json"),
        "telemetry": session_telemetry.model_dump(mode="json"),
        "diagnosis": vocal_diagnosis.model_dump(mode="json"),
    }

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8") as f:
            json.dump(result, f, indent=2, ensure_ascii=False)
        _emit({"event": "analysis_complete", "output_path": str(output_path.resolve())})
    else:
        print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


def cmd_init_config(args: argparse.Namespace) -> int:
    path = Path(args.output)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(DEFAULT_CONFIG, f, indent=2)
    print(str(path.resolve()))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("app:web_app", host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vocal-analysis", description="Vocal performance analysis CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze_parser = sub.add_parser("analyze", help="Analyse a recorded session from a samples JSON file")
    analyze_parser.add_argument("--input", type=str, required=True, help="Path to samples JSON")
    analyze_parser.add_argument("--duration", type=float, required=True, help="Song duration in seconds")
    analyze_parser.add_argument("--config", type=str, default=None, help="Path to threshold config JSON")
    analyze_parser.add_argument("--output", type=str, default=None, help="Where to write result JSON (stdout if omitted)")
    analyze_parser.set_defaults(func=cmd_analyze)

    init_parser = sub.add_parser("init-config", help="Write a starter threshold config file")
    init_parser.add_argument("--output", type=str, required=True, help="Path for starter config JSON")
    init_parser.set_defaults(func=cmd_init_config)

    serve_parser = sub.add_parser("serve", help="Run the HTTP analysis service")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--log-level", type=str, default=os.environ.get("LOG_LEVEL", "INFO"))
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    sys.exit(main())
