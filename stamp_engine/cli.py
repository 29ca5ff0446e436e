from __future__ import annotations

import argparse
from pathlib import Path

from .config import load_config
from .exporter import export_crops
from .job import create_job_dirs, init_job_outputs, new_job_id, snapshot_input
from .pipeline import EnginePipeline, RunOptions
from .selection import apply_selection
from .validator import validate_job


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="stamp_engine")
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Detect and crop stamps/signatures from a pdf or images")
    run.add_argument("--input", required=True, help="Input path (pdf file, image file or images folder)")
    run.add_argument("--type", required=True, choices=["pdf", "image", "images"], help="Input type")
    run.add_argument("--workspace", default="./workspace", help="Workspace root")
    run.add_argument("--config", default=str(Path("config") / "default.json"), help="Config path")
    run.add_argument("--scale", type=float, default=None, help="PDF render scale (overrides config)")
    run.add_argument("--upscale", type=float, default=None, help="Image upscale factor (overrides config)")
    run.add_argument(
        "--knockout",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Also write background-knocked-out crops (overrides config)",
    )

    validate = sub.add_parser("validate", help="Validate Output Contract + referenced crop files")
    validate.add_argument("--job-dir", required=True, help="Job directory (workspace/jobs/<job_id>)")

    sel = sub.add_parser("select", help="Apply crop selection to a job")
    sel.add_argument("--job-dir", required=True, help="Job directory (workspace/jobs/<job_id>)")
    sel.add_argument("--selection", required=True, help="Path to selection.json")

    export = sub.add_parser("export", help="Package crops from a completed job")
    export.add_argument("--job-dir", required=True, help="Job directory (workspace/jobs/<job_id>)")
    export.add_argument("--format", default="zip", choices=["zip", "dir"], help="Export format")
    export.add_argument("--out", required=True, help="Output zip file or directory")
    export.add_argument("--all", action="store_true", help="Export every non-rejected crop, not only selected")
    export.add_argument("--min-size", type=int, default=None, help="Skip crops smaller than this (px)")
    export.add_argument("--prefer-knockout", action="store_true", help="Use knocked-out PNGs when present")
    export.add_argument("--config", default=str(Path("config") / "default.json"), help="Config path")

    return p


def cmd_run(args: argparse.Namespace) -> int:
    job_id = new_job_id()
    paths = create_job_dirs(args.workspace, job_id)
    init_job_outputs(paths)
    snapshot_input(paths, args.input, args.type)

    cfg = load_config(args.config)
    opts = RunOptions(
        input_path=args.input,
        input_type=args.type,
        pdf_scale=args.scale,
        image_upscale=args.upscale,
        knockout=args.knockout,
    )

    try:
        metrics = EnginePipeline(paths=paths, cfg=cfg, opts=opts).run(job_id=job_id)
    except Exception as e:
        print(f"run_failed: {e}")
        return 1

    print(str(paths.job_dir))
    print(
        f"pages={metrics['pages_total']} pages_failed={metrics['pages_failed']} "
        f"crops={metrics['crops_written']} filtered_small={metrics['regions_filtered_small']}"
    )
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    errors = validate_job(args.job_dir)
    if errors:
        for m in errors:
            print(m)
        return 1
    print("OK")
    return 0


def cmd_select(args: argparse.Namespace) -> int:
    try:
        stats = apply_selection(job_dir=args.job_dir, selection_path=args.selection)
    except Exception as e:
        print(f"select_failed: {e}")
        return 1
    print(
        f"feedback_items={stats.feedback_items} applied={stats.applied} "
        f"skipped_unknown_crop={stats.skipped_unknown_crop} "
        f"skipped_already_applied={stats.skipped_already_applied} skipped_invalid={stats.skipped_invalid}"
    )
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    min_size = args.min_size
    if min_size is None:
        min_size = int(load_config(args.config).export.get("min_size", 0))
    try:
        stats = export_crops(
            job_dir=args.job_dir,
            out_path=args.out,
            fmt=args.format,
            include_all=bool(args.all),
            min_size=min_size,
            prefer_knockout=bool(args.prefer_knockout),
        )
    except Exception as e:
        print(f"export_failed: {e}")
        return 1
    print(
        f"exported={stats.crops_exported} skipped_unselected={stats.crops_skipped_unselected} "
        f"skipped_small={stats.crops_skipped_small} skipped_missing_image={stats.crops_skipped_missing_image}"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return cmd_run(args)

    if args.command == "validate":
        return cmd_validate(args)

    if args.command == "select":
        return cmd_select(args)

    if args.command == "export":
        return cmd_export(args)

    raise SystemExit(2)


if __name__ == "__main__":
    raise SystemExit(main())
