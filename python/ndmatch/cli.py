"""Command-line front end: match a template file against a source file."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np

from .config import MatchConfig, STRATEGIES
from .errors import NdMatchError
from .matching import best_match, match_template
from .metrics import Metric

logger = logging.getLogger(__name__)


def load_array(path: Path) -> np.ndarray:
    """Load ``.npy`` files with numpy and anything else as a grayscale image."""
    if path.suffix == ".npy":
        return np.load(path, allow_pickle=False)
    from PIL import Image

    with Image.open(path) as img:
        if img.mode != "L":
            img = img.convert("L")
        return np.array(img, dtype=np.uint8)


def load_cli_config(path: Path) -> dict:
    with path.open(encoding="utf-8") as handle:
        config = json.load(handle)
    if not isinstance(config, dict):
        raise ValueError(f"top level must be a JSON object, got {type(config).__name__}")
    if not isinstance(config.get("match", {}), dict):
        raise ValueError("'match' must be a JSON object")
    return config


def _fail(message: str) -> int:
    logger.error(message)
    print(f"error: {message}", file=sys.stderr)
    return 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ndmatch",
        description="Score every placement of an n-dimensional template inside a source array.",
    )
    parser.add_argument("source", type=Path, nargs="?")
    parser.add_argument("template", type=Path, nargs="?")
    parser.add_argument("--metric", choices=[m.value for m in Metric])
    parser.add_argument("--strategy", choices=STRATEGIES)
    parser.add_argument("--parallel", action="store_true", default=None)
    parser.add_argument("--workers", type=int)
    parser.add_argument("--config", type=Path, help="JSON file with 'metric' and 'match' keys")
    parser.add_argument("--out", type=Path, help="save the score array as .npy")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        file_config = load_cli_config(args.config) if args.config else {}
    except (OSError, json.JSONDecodeError, ValueError) as exc:
        return _fail(f"cannot read config {args.config}: {exc}")

    base_dir = args.config.parent if args.config else Path.cwd()
    source_path = args.source or _config_path(file_config, "source_path", base_dir)
    template_path = args.template or _config_path(file_config, "template_path", base_dir)
    if source_path is None or template_path is None:
        parser.error("source and template are required (as arguments or in --config)")

    match_options = dict(file_config.get("match", {}))
    for key in ("strategy", "parallel", "workers"):
        value = getattr(args, key)
        if value is not None:
            match_options[key] = value
    metric = args.metric or file_config.get("metric", Metric.NORMED_CORRELATION_COEFF.value)

    try:
        config = MatchConfig.from_dict(match_options)
        source = load_array(source_path)
        template = load_array(template_path)
        scores = match_template(source, template, metric, config)
    except (NdMatchError, ValueError, TypeError, OSError) as exc:
        return _fail(f"matching failed: {exc}")

    best = best_match(scores, metric)
    if args.out:
        np.save(args.out, scores)
        logger.info("saved scores to %s", args.out)

    print(
        json.dumps(
            {
                "index": list(best.index),
                "score": best.score,
                "metric": Metric.parse(metric).value,
                "shape": list(scores.shape),
            }
        )
    )
    return 0


def _config_path(config: dict, key: str, base_dir: Path) -> Optional[Path]:
    value = config.get(key)
    if value is None:
        return None
    path = Path(value)
    return path if path.is_absolute() else base_dir / path
