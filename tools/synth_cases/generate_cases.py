#!/usr/bin/env python3
import argparse
import json
import shutil
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np

try:
    from PIL import Image
except ImportError:  # pragma: no cover - runtime guard
    print(
        "Pillow is required. Install the images extra:\n"
        "  pip install -e .[images]",
        file=sys.stderr,
    )
    raise SystemExit(1)


DEFAULT_MATCH = {
    "strategy": "auto",
    "parallel": False,
    "min_variance": 1e-10,
}

Box = Tuple[Tuple[int, ...], Tuple[int, ...]]


@dataclass(frozen=True)
class CaseSpec:
    case_id: str
    family: str
    source_shape: Tuple[int, ...]
    template_shape: Tuple[int, ...]
    template_pattern: str
    background_style: str
    metric: str = "ccoeff_normed"
    present: bool = True
    template_gain: float = 1.0
    template_bias: float = 0.0
    global_gain: float = 1.0
    global_bias: float = 0.0
    noise_sigma: float = 0.0
    distractors: int = 0
    place_mode: str = "random"
    background_value: Optional[int] = None
    match_overrides: Optional[Dict[str, object]] = None
    notes: str = ""


def clamp_u8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def coordinate_grids(shape: Tuple[int, ...]) -> List[np.ndarray]:
    return list(np.indices(shape))


def pattern_xor(shape: Tuple[int, ...]) -> np.ndarray:
    grids = coordinate_grids(shape)
    value = np.zeros(shape, dtype=np.int64)
    primes = (13, 7, 5, 3, 11, 17)
    for axis, grid in enumerate(grids):
        value ^= grid * primes[axis % len(primes)]
    product = np.ones(shape, dtype=np.int64)
    for grid in grids:
        product *= grid
    return ((value ^ product) & 0xFF).astype(np.uint8)


def pattern_checker(shape: Tuple[int, ...], cell: int) -> np.ndarray:
    parity = sum(grid // cell for grid in coordinate_grids(shape)) % 2
    return np.where(parity == 0, 32, 224).astype(np.uint8)


def pattern_rings(shape: Tuple[int, ...], freq: float) -> np.ndarray:
    radius_sq = np.zeros(shape, dtype=np.float64)
    for grid, n in zip(coordinate_grids(shape), shape):
        radius_sq += (grid - (n - 1) * 0.5) ** 2
    return clamp_u8(128.0 + 110.0 * np.sin(np.sqrt(radius_sq) * freq))


def pattern_bars(shape: Tuple[int, ...], cell: int) -> np.ndarray:
    last = coordinate_grids(shape)[-1]
    return np.where((last // cell) % 2 == 0, 40, 210).astype(np.uint8)


def pattern_noise(shape: Tuple[int, ...], rng: np.random.Generator) -> np.ndarray:
    return rng.integers(0, 256, size=shape, dtype=np.uint8)


def make_pattern(name: str, shape: Tuple[int, ...], rng: np.random.Generator) -> np.ndarray:
    if name == "xor":
        return pattern_xor(shape)
    if name == "checker":
        return pattern_checker(shape, max(2, min(shape) // 8))
    if name == "rings":
        return pattern_rings(shape, 0.35)
    if name == "bars":
        return pattern_bars(shape, max(2, shape[-1] // 12))
    if name == "noise":
        return pattern_noise(shape, rng)
    raise ValueError(f"unknown pattern '{name}'")


def make_background(
    style: str, shape: Tuple[int, ...], rng: np.random.Generator, value: Optional[int]
) -> np.ndarray:
    if style == "flat":
        fill = value if value is not None else int(rng.integers(20, 201))
        return np.full(shape, fill, dtype=np.uint8)
    if style == "gradient":
        base = float(rng.integers(40, 141))
        out = np.full(shape, base, dtype=np.float64)
        for grid in coordinate_grids(shape):
            out += rng.uniform(-0.4, 0.4) * grid
        return clamp_u8(out)
    if style == "noise":
        return pattern_noise(shape, rng)
    if style == "rings":
        return pattern_rings(shape, 0.22)
    if style == "mixed":
        base = make_background("gradient", shape, rng, value).astype(np.float64)
        return clamp_u8(base + rng.integers(-20, 21, size=shape))
    raise ValueError(f"unknown background '{style}'")


def boxes_overlap(a: Box, b: Box) -> bool:
    return all(
        a0 < b0 + bn and a0 + an > b0 for a0, an, b0, bn in zip(a[0], a[1], b[0], b[1])
    )


def choose_position(
    rng: np.random.Generator,
    source_shape: Tuple[int, ...],
    template_shape: Tuple[int, ...],
    place_mode: str,
    avoid: List[Box],
) -> Tuple[int, ...]:
    margin = 2
    limits = [max(0, s - t) for s, t in zip(source_shape, template_shape)]

    def pick() -> Tuple[int, ...]:
        position = []
        for limit in limits:
            if limit > margin * 2:
                position.append(int(rng.integers(margin, limit - margin + 1)))
            else:
                position.append(0)
        if place_mode == "edge":
            axis = int(rng.integers(0, len(limits)))
            if rng.random() < 0.5:
                position[axis] = int(rng.integers(0, min(margin, limits[axis]) + 1))
            else:
                position[axis] = int(rng.integers(max(0, limits[axis] - margin), limits[axis] + 1))
        return tuple(position)

    for _ in range(80):
        position = pick()
        box = (position, template_shape)
        if not any(boxes_overlap(box, other) for other in avoid):
            return position
    return pick()


def embed_template(
    source: np.ndarray,
    template: np.ndarray,
    position: Tuple[int, ...],
    gain: float,
    bias: float,
) -> None:
    key = tuple(slice(p, p + n) for p, n in zip(position, template.shape))
    source[key] = clamp_u8(template.astype(np.float64) * gain + bias)


def apply_gain_bias(data: np.ndarray, gain: float, bias: float) -> np.ndarray:
    if gain == 1.0 and bias == 0.0:
        return data
    return clamp_u8(data.astype(np.float64) * gain + bias)


def add_gaussian_noise(data: np.ndarray, sigma: float, rng: np.random.Generator) -> np.ndarray:
    if sigma <= 0.0:
        return data
    return clamp_u8(data.astype(np.float64) + rng.normal(0.0, sigma, size=data.shape))


def stable_seed(base_seed: int, case_id: str, index: int) -> int:
    h = 2166136261
    for ch in case_id:
        h ^= ord(ch)
        h = (h * 16777619) & 0xFFFFFFFF
    h ^= (index + 1) * 0x9E3779B1
    h ^= base_seed & 0xFFFFFFFF
    return h & 0xFFFFFFFF


def save_array(directory: Path, stem: str, data: np.ndarray) -> str:
    """Write 2-D arrays as PNG and everything else as ``.npy``."""
    if data.ndim == 2:
        name = f"{stem}.png"
        Image.fromarray(data).save(directory / name, format="PNG")
    else:
        name = f"{stem}.npy"
        np.save(directory / name, data)
    return name


def build_config(spec: CaseSpec) -> Dict[str, object]:
    match_cfg = dict(DEFAULT_MATCH)
    if spec.match_overrides:
        match_cfg.update(spec.match_overrides)
    return match_cfg


def generate_case(
    spec: CaseSpec,
    out_dir: Path,
    base_seed: int,
    case_index: int,
) -> Dict[str, object]:
    case_seed = stable_seed(base_seed, spec.case_id, case_index)
    rng = np.random.default_rng(case_seed)

    template = make_pattern(spec.template_pattern, spec.template_shape, rng)
    source = make_background(
        spec.background_style, spec.source_shape, rng, spec.background_value
    )

    instances = []
    avoid: List[Box] = []
    if spec.present:
        position = choose_position(
            rng, spec.source_shape, spec.template_shape, spec.place_mode, avoid
        )
        embed_template(source, template, position, spec.template_gain, spec.template_bias)
        avoid.append((position, spec.template_shape))
        instances.append(
            {
                "kind": "target",
                "position": list(position),
                "gain": spec.template_gain,
                "bias": spec.template_bias,
            }
        )

    for _ in range(spec.distractors):
        position = choose_position(rng, spec.source_shape, spec.template_shape, "random", avoid)
        # Shifted copies of the pattern, so only the target is an exact match.
        gain = spec.template_gain * float(rng.uniform(0.3, 0.6))
        bias = spec.template_bias + float(rng.uniform(40.0, 80.0))
        distractor = clamp_u8(np.roll(template.astype(np.float64), 3, axis=-1))
        embed_template(source, distractor, position, gain, bias)
        avoid.append((position, spec.template_shape))
        instances.append(
            {"kind": "distractor", "position": list(position), "gain": gain, "bias": bias}
        )

    source = apply_gain_bias(source, spec.global_gain, spec.global_bias)
    source = add_gaussian_noise(source, spec.noise_sigma, rng)

    source_name = save_array(out_dir, "source", source)
    template_name = save_array(out_dir, "template", template)

    cli_config = {
        "source_path": source_name,
        "template_path": template_name,
        "metric": spec.metric,
        "match": build_config(spec),
    }
    with (out_dir / "cli_config.json").open("w", encoding="utf-8") as handle:
        json.dump(cli_config, handle, indent=2, sort_keys=True)

    meta = {
        "case_id": spec.case_id,
        "family": spec.family,
        "seed": case_seed,
        "present": spec.present,
        "source": {"shape": list(spec.source_shape), "file": source_name},
        "template": {
            "shape": list(spec.template_shape),
            "file": template_name,
            "pattern": spec.template_pattern,
        },
        "background": {
            "style": spec.background_style,
            "value": spec.background_value,
        },
        "metric": spec.metric,
        "effects": {
            "template_gain": spec.template_gain,
            "template_bias": spec.template_bias,
            "global_gain": spec.global_gain,
            "global_bias": spec.global_bias,
            "noise_sigma": spec.noise_sigma,
        },
        "instances": instances,
        "cli_config": cli_config,
        "notes": spec.notes,
    }
    with (out_dir / "meta.json").open("w", encoding="utf-8") as handle:
        json.dump(meta, handle, indent=2, sort_keys=True)

    return {
        "case_id": spec.case_id,
        "family": spec.family,
        "dir": out_dir.name,
        "present": spec.present,
        "source": str(Path(out_dir.name) / source_name),
        "template": str(Path(out_dir.name) / template_name),
        "meta": str(Path(out_dir.name) / "meta.json"),
        "cli_config": str(Path(out_dir.name) / "cli_config.json"),
    }


def base_cases_standard() -> List[CaseSpec]:
    return [
        CaseSpec(
            case_id="clean_translation",
            family="translation",
            source_shape=(192, 256),
            template_shape=(48, 64),
            template_pattern="xor",
            background_style="flat",
            metric="sqdiff",
        ),
        CaseSpec(
            case_id="clean_translation_1d",
            family="translation",
            source_shape=(4096,),
            template_shape=(300,),
            template_pattern="noise",
            background_style="noise",
            metric="sqdiff",
        ),
        CaseSpec(
            case_id="volume_translation",
            family="translation",
            source_shape=(48, 40, 36),
            template_shape=(10, 8, 12),
            template_pattern="rings",
            background_style="mixed",
            metric="ccorr_normed",
        ),
        CaseSpec(
            case_id="hypervolume_translation",
            family="translation",
            source_shape=(12, 14, 10, 16),
            template_shape=(4, 5, 3, 6),
            template_pattern="noise",
            background_style="noise",
            metric="sqdiff_normed",
        ),
        CaseSpec(
            case_id="noise_gaussian",
            family="noise",
            source_shape=(240, 320),
            template_shape=(64, 80),
            template_pattern="xor",
            background_style="gradient",
            noise_sigma=12.0,
        ),
        CaseSpec(
            case_id="illumination_shift",
            family="illumination",
            source_shape=(220, 300),
            template_shape=(52, 72),
            template_pattern="xor",
            background_style="gradient",
            template_gain=0.75,
            template_bias=14.0,
        ),
        CaseSpec(
            case_id="distractors",
            family="distractors",
            source_shape=(320, 420),
            template_shape=(60, 80),
            template_pattern="rings",
            background_style="mixed",
            distractors=3,
        ),
        CaseSpec(
            case_id="near_border",
            family="edge",
            source_shape=(240, 320),
            template_shape=(68, 88),
            template_pattern="checker",
            background_style="gradient",
            place_mode="edge",
        ),
        CaseSpec(
            case_id="flat_background_normed",
            family="degenerate",
            source_shape=(96, 128),
            template_shape=(24, 32),
            template_pattern="bars",
            background_style="flat",
            metric="ccoeff_normed",
            notes="flat windows resolve to the sentinel score",
        ),
        CaseSpec(
            case_id="negative_no_match",
            family="negative",
            source_shape=(240, 320),
            template_shape=(64, 80),
            template_pattern="xor",
            background_style="noise",
            present=False,
            noise_sigma=6.0,
        ),
        CaseSpec(
            case_id="forced_fft",
            family="strategy",
            source_shape=(300, 300),
            template_shape=(90, 90),
            template_pattern="checker",
            background_style="noise",
            match_overrides={"strategy": "fft"},
        ),
        CaseSpec(
            case_id="forced_direct_parallel",
            family="strategy",
            source_shape=(200, 200),
            template_shape=(12, 12),
            template_pattern="noise",
            background_style="mixed",
            match_overrides={"strategy": "direct", "parallel": True},
        ),
    ]


def base_cases_smoke() -> List[CaseSpec]:
    return [
        CaseSpec(
            case_id="smoke_translation",
            family="translation",
            source_shape=(144, 192),
            template_shape=(40, 56),
            template_pattern="xor",
            background_style="flat",
            metric="sqdiff",
        ),
        CaseSpec(
            case_id="smoke_volume",
            family="translation",
            source_shape=(24, 24, 24),
            template_shape=(6, 7, 5),
            template_pattern="noise",
            background_style="noise",
        ),
        CaseSpec(
            case_id="smoke_negative",
            family="negative",
            source_shape=(144, 192),
            template_shape=(40, 56),
            template_pattern="noise",
            background_style="noise",
            present=False,
        ),
    ]


def base_cases_performance() -> List[CaseSpec]:
    return [
        CaseSpec(
            case_id="perf_large_translation",
            family="performance",
            source_shape=(1200, 1600),
            template_shape=(180, 240),
            template_pattern="xor",
            background_style="mixed",
            match_overrides={"parallel": True},
        ),
        CaseSpec(
            case_id="perf_large_volume",
            family="performance",
            source_shape=(128, 128, 128),
            template_shape=(24, 24, 24),
            template_pattern="rings",
            background_style="mixed",
            match_overrides={"parallel": True},
        ),
        CaseSpec(
            case_id="perf_small_template",
            family="performance",
            source_shape=(1024, 1024),
            template_shape=(7, 7),
            template_pattern="noise",
            background_style="noise",
            metric="sqdiff",
            match_overrides={"strategy": "direct", "parallel": True},
        ),
    ]


def build_suite(name: str) -> List[CaseSpec]:
    if name == "smoke":
        return base_cases_smoke()
    if name == "standard":
        return base_cases_standard()
    if name == "performance":
        return base_cases_performance()
    raise ValueError(f"unknown suite '{name}'")


def expand_cases(cases: List[CaseSpec], count: int) -> List[CaseSpec]:
    if count <= 1:
        return cases
    expanded = []
    for spec in cases:
        for idx in range(count):
            suffix = f"_{idx + 1}"
            expanded.append(replace(spec, case_id=f"{spec.case_id}{suffix}"))
    return expanded


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate synthetic n-dimensional cases for ndmatch.",
    )
    parser.add_argument("--out", type=Path, default=Path("synthetic_cases"))
    parser.add_argument("--suite", choices=["smoke", "standard", "performance"], default="standard")
    parser.add_argument("--seed", type=int, default=1337)
    parser.add_argument("--cases-per-family", type=int, default=1)
    parser.add_argument("--overwrite", action="store_true")
    parser.add_argument("--list", action="store_true")
    parser.add_argument("--case", action="append", default=[])
    parser.add_argument("--family", action="append", default=[])
    args = parser.parse_args()

    cases = expand_cases(build_suite(args.suite), args.cases_per_family)
    if args.case:
        wanted = set(args.case)
        cases = [case for case in cases if case.case_id in wanted]
    if args.family:
        wanted = set(args.family)
        cases = [case for case in cases if case.family in wanted]

    if args.list:
        for case in cases:
            print(f"{case.case_id}\t{'x'.join(map(str, case.source_shape))}")
        return 0

    out_dir = args.out
    out_dir.mkdir(parents=True, exist_ok=True)

    manifest_cases = []
    for index, spec in enumerate(cases):
        case_dir = out_dir / spec.case_id
        if case_dir.exists():
            if not args.overwrite:
                raise SystemExit(
                    f"{case_dir} already exists. Use --overwrite or choose a new --out."
                )
            shutil.rmtree(case_dir)
        case_dir.mkdir(parents=True, exist_ok=True)
        manifest_cases.append(generate_case(spec, case_dir, args.seed, index))

    manifest = {
        "suite": args.suite,
        "seed": args.seed,
        "cases_per_family": args.cases_per_family,
        "cases": manifest_cases,
    }
    with (out_dir / "manifest.json").open("w", encoding="utf-8") as handle:
        json.dump(manifest, handle, indent=2, sort_keys=True)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
