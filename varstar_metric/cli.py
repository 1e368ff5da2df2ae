"""Command line interface for variable-star metric learning."""

from __future__ import annotations

import argparse
import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np
from pydantic import ValidationError

from .bounds import estimate_bounds
from .config import ITMLConfig, itml_config_from_dict, load_config
from .errors import ConvergenceTimeout, InsufficientConstraintsError
from .evaluate import pair_separation
from .io import Labels, Patterns, load_dataset, load_metric, pattern_matrix, save_metric
from .itml import InformationTheoreticMetricLearning

logger = logging.getLogger(__name__)


def _extract_paths(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not config:
        return {}
    raw = config.get("paths")
    return raw if isinstance(raw, dict) else {}


def _optional_path(*values: Optional[Any]) -> Optional[Path]:
    for value in values:
        if not value:
            continue
        return Path(str(value)).expanduser().resolve()
    return None


def _load_cli_config(args: argparse.Namespace) -> Dict[str, Any]:
    if not getattr(args, "config", None):
        return {}
    return load_config(args.config)


def _build_itml_config(
    config: Dict[str, Any], args: argparse.Namespace
) -> ITMLConfig:
    """Validate the YAML ``itml`` section with command line overrides applied."""

    base = itml_config_from_dict(config)
    overrides: Dict[str, Any] = {}
    if getattr(args, "seed", None) is not None:
        overrides["seed"] = args.seed
    if getattr(args, "max_iter", None) is not None:
        overrides["max_iter"] = args.max_iter
    if getattr(args, "timeout", None) is not None:
        overrides["timeout_seconds"] = args.timeout
    if getattr(args, "psd_clip", False):
        overrides["psd_clip"] = True
    if not overrides:
        return base
    return ITMLConfig.model_validate({**base.model_dump(), **overrides})


def _json_ready(report: Dict[str, Dict[str, float]]) -> Dict[str, Dict[str, Optional[float]]]:
    """Replace NaN scores with ``None`` so the report serializes as strict JSON."""
    return {
        group: {key: (None if math.isnan(value) else value) for key, value in values.items()}
        for group, values in report.items()
    }


def _load_training_data(
    args: argparse.Namespace, config: Dict[str, Any]
) -> Tuple[Patterns, Labels]:
    paths_cfg = _extract_paths(config)
    dataset_path = _optional_path(args.dataset, paths_cfg.get("dataset"))
    if dataset_path is None:
        raise FileNotFoundError(
            "Provide --dataset or set paths.dataset in the config",
        )
    labels_path = _optional_path(args.labels, paths_cfg.get("labels"))
    return load_dataset(dataset_path, labels_path)


def cmd_estimate_bounds(args: argparse.Namespace) -> int:
    try:
        config = _load_cli_config(args)
        itml_cfg = _build_itml_config(config, args)
    except (OSError, ValueError, ValidationError) as exc:
        logger.error("Failed to load config %s: %s", args.config, exc)
        return 1

    try:
        patterns, _labels = _load_training_data(args, config)
        _ids, data = pattern_matrix(patterns)
        bounds = estimate_bounds(
            patterns,
            np.eye(data.shape[1]),
            lower_percentile=itml_cfg.lower_percentile,
            upper_percentile=itml_cfg.upper_percentile,
            num_distances=itml_cfg.num_distances,
            rng=itml_cfg.seed,
            exclude_self_pairs=itml_cfg.exclude_self_pairs,
        )
    except (FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    print(json.dumps({"lower": bounds.lower, "upper": bounds.upper}, indent=2))  # noqa: T201
    return 0


def cmd_train_metric(args: argparse.Namespace) -> int:
    try:
        config = _load_cli_config(args)
        itml_cfg = _build_itml_config(config, args)
    except (OSError, ValueError, ValidationError) as exc:
        logger.error("Failed to load config %s: %s", args.config, exc)
        return 1

    try:
        patterns, labels = _load_training_data(args, config)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    output_path = _optional_path(args.output, _extract_paths(config).get("metric"))
    if output_path is None:
        logger.error("Provide --output or set paths.metric in the config")
        return 1

    learner = InformationTheoreticMetricLearning(config=itml_cfg)
    try:
        result = learner.fit(patterns, labels)
    except InsufficientConstraintsError as exc:
        logger.error("Insufficient training data: %s", exc)
        return 1
    except ConvergenceTimeout as exc:
        logger.error("%s (after %d iterations)", exc, exc.iterations)
        return 1

    saved = save_metric(output_path, result)
    logger.info("Saved learned metric to %s", saved)
    print(f"Saved learned metric to {saved}")  # noqa: T201
    return 0


def cmd_evaluate(args: argparse.Namespace) -> int:
    try:
        config = _load_cli_config(args)
    except (OSError, ValueError) as exc:
        logger.error("Failed to load config %s: %s", args.config, exc)
        return 1

    paths_cfg = _extract_paths(config)
    metric_path = _optional_path(args.metric, paths_cfg.get("metric"))
    if metric_path is None:
        logger.error("Provide --metric or set paths.metric in the config")
        return 1

    try:
        patterns, labels = _load_training_data(args, config)
        metric = load_metric(metric_path)
        report = _json_ready(pair_separation(patterns, labels, metric))
    except (FileNotFoundError, KeyError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    output_path = _optional_path(args.output, paths_cfg.get("eval_report"))
    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8") as handle:
            json.dump(report, handle, indent=2, allow_nan=False)
        print(f"Saved evaluation report to {output_path}")  # noqa: T201
    else:
        print(json.dumps(report, indent=2, allow_nan=False))  # noqa: T201
    return 0


def _add_dataset_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--dataset",
        type=str,
        help="Path to a .npz dataset (patterns, labels[, ids]) or .npy patterns",
    )
    parser.add_argument(
        "--labels",
        type=str,
        help="Optional CSV of id,label rows (required with .npy patterns)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Variable-star metric learning CLI")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command")

    bounds_parser = subparsers.add_parser(
        "estimate-bounds", help="Estimate similarity / dissimilarity distance bounds"
    )
    _add_dataset_arguments(bounds_parser)
    bounds_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed (overrides config)",
    )
    bounds_parser.set_defaults(func=cmd_estimate_bounds)

    train_parser = subparsers.add_parser(
        "train-metric", help="Learn a Mahalanobis metric with ITML"
    )
    _add_dataset_arguments(train_parser)
    train_parser.add_argument(
        "--output",
        type=str,
        help="Destination .npz for the learned metric",
    )
    train_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed (overrides config)",
    )
    train_parser.add_argument(
        "--max-iter",
        type=int,
        default=None,
        help="Projection iteration cap (overrides config)",
    )
    train_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Projection wall-clock budget in seconds (overrides config)",
    )
    train_parser.add_argument(
        "--psd-clip",
        action="store_true",
        help="Clip negative eigenvalues of the learned metric",
    )
    train_parser.set_defaults(func=cmd_train_metric)

    eval_parser = subparsers.add_parser(
        "evaluate", help="Report pair separation under a learned metric"
    )
    _add_dataset_arguments(eval_parser)
    eval_parser.add_argument(
        "--metric",
        type=str,
        help="Learned metric .npz produced by train-metric",
    )
    eval_parser.add_argument(
        "--output",
        type=str,
        help="Destination for the evaluation report JSON",
    )
    eval_parser.set_defaults(func=cmd_evaluate)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not getattr(args, "command", None):
        parser.print_help()
        return 0

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
