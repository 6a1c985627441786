"""Pytest fixtures for ndmatch testing."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

import numpy as np
import pytest

from ndmatch import Metric

# Generated by tools/synth_cases/generate_cases.py (relative to repo root)
SYNTHETIC_CASES_DIR = Path(__file__).parent.parent.parent / "synthetic_cases"


@dataclass
class Instance:
    """Ground truth for a template instance."""
    kind: str
    position: Tuple[int, ...]
    gain: float
    bias: float


@dataclass
class SyntheticCase:
    """A synthetic test case with ground truth."""
    case_id: str
    family: str
    source_path: Path
    template_path: Path
    meta_path: Path
    cli_config_path: Path
    metric: str
    match_options: Dict[str, object]
    instances: List[Instance]
    expected_present: bool
    source_shape: Tuple[int, ...]
    template_shape: Tuple[int, ...]


def load_case(case_dir: Path) -> SyntheticCase:
    """Load a synthetic test case from a directory."""
    meta_path = case_dir / "meta.json"
    with open(meta_path) as f:
        meta = json.load(f)

    instances = []
    for inst in meta.get("instances", []):
        instances.append(Instance(
            kind=inst.get("kind", "target"),
            position=tuple(inst["position"]),
            gain=inst.get("gain", 1.0),
            bias=inst.get("bias", 0.0),
        ))

    cli_config = meta["cli_config"]
    return SyntheticCase(
        case_id=meta["case_id"],
        family=meta["family"],
        source_path=case_dir / meta["source"]["file"],
        template_path=case_dir / meta["template"]["file"],
        meta_path=meta_path,
        cli_config_path=case_dir / "cli_config.json",
        metric=cli_config["metric"],
        match_options=cli_config.get("match", {}),
        instances=instances,
        expected_present=meta.get("present", True),
        source_shape=tuple(meta["source"]["shape"]),
        template_shape=tuple(meta["template"]["shape"]),
    )


def discover_cases() -> List[SyntheticCase]:
    """Discover all synthetic test cases."""
    if not SYNTHETIC_CASES_DIR.exists():
        return []

    cases = []
    manifest_path = SYNTHETIC_CASES_DIR / "manifest.json"
    if manifest_path.exists():
        with open(manifest_path) as f:
            manifest = json.load(f)
        case_dirs = [SYNTHETIC_CASES_DIR / entry["dir"] for entry in manifest.get("cases", [])]
    else:
        # Fallback: discover all subdirectories
        case_dirs = sorted(SYNTHETIC_CASES_DIR.iterdir())

    for case_dir in case_dirs:
        if case_dir.is_dir() and (case_dir / "meta.json").exists():
            try:
                cases.append(load_case(case_dir))
            except (KeyError, ValueError, OSError) as e:
                print(f"Warning: Failed to load case {case_dir.name}: {e}")
    return cases


@pytest.fixture(scope="session")
def synthetic_cases() -> List[SyntheticCase]:
    """All available synthetic test cases."""
    return discover_cases()


@pytest.fixture(params=discover_cases(), ids=lambda c: c.case_id)
def synthetic_case(request) -> SyntheticCase:
    """Parametrized fixture for each synthetic test case."""
    return request.param


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded generator so every test sees the same arrays."""
    return np.random.default_rng(20240611)


def load_image(path: Path) -> np.ndarray:
    """Load a grayscale image as numpy array."""
    try:
        from PIL import Image
    except ImportError:
        pytest.skip("PIL not available")

    img = Image.open(path)
    if img.mode != "L":
        img = img.convert("L")
    return np.array(img, dtype=np.uint8)


def load_array(path: Path) -> np.ndarray:
    """Load a case array saved either as ``.npy`` or as an image."""
    if path.suffix == ".npy":
        return np.load(path)
    return load_image(path)


def reference_match(source: np.ndarray, template: np.ndarray, metric: Metric) -> np.ndarray:
    """Brute-force scores, one explicit window at a time."""
    source = np.asarray(source, dtype=np.float64)
    template = np.asarray(template, dtype=np.float64)
    shape = tuple(s - t + 1 for s, t in zip(source.shape, template.shape))
    out = np.empty(shape)
    t_centered = template - template.mean()
    for index in np.ndindex(*shape):
        window = source[tuple(slice(i, i + t) for i, t in zip(index, template.shape))]
        w_centered = window - window.mean()
        if metric is Metric.SQUARE_DIFF:
            value = np.sum((window - template) ** 2)
        elif metric is Metric.NORMED_SQUARE_DIFF:
            value = np.sum((window - template) ** 2) / np.sqrt(
                np.sum(window ** 2) * np.sum(template ** 2)
            )
        elif metric is Metric.CROSS_CORRELATION:
            value = np.sum(window * template)
        elif metric is Metric.NORMED_CROSS_CORRELATION:
            value = np.sum(window * template) / np.sqrt(
                np.sum(window ** 2) * np.sum(template ** 2)
            )
        elif metric is Metric.CORRELATION_COEFF:
            value = np.sum(w_centered * t_centered)
        else:
            value = np.sum(w_centered * t_centered) / np.sqrt(
                np.sum(w_centered ** 2) * np.sum(t_centered ** 2)
            )
        out[index] = value
    return out


# Tolerance settings for validation
POSITION_TOLERANCE = 1       # samples, per axis
MIN_SCORE_THRESHOLD = 0.8    # ccoeff_normed / ccorr_normed score
SCORE_RTOL = 1e-7
SCORE_ATOL = 1e-6


def assert_match_close(index, expected: Instance, pos_tol: int = POSITION_TOLERANCE):
    """Assert that a best-match index is close to the expected ground truth."""
    assert len(index) == len(expected.position), \
        f"rank mismatch: got {index}, expected {expected.position}"
    for axis, (got, want) in enumerate(zip(index, expected.position)):
        err = abs(got - want)
        assert err <= pos_tol, f"axis {axis} error: {err} > {pos_tol} (got {got}, expected {want})"
