"""
Taste World - command line entry point

Builds a taste world from seed tracks and questionnaire answers, then
generates one playlist per world intersection.
"""
import argparse
import json
import logging
import os
import sys

from taste_world.config_loader import Config
from taste_world.errors import RegenerationCooldown, WorldNotFound
from taste_world.jobs import JobManager
from taste_world.logging_utils import add_logging_args, configure_logging, resolve_log_level
from taste_world.storage import load_world
from taste_world.world.types import OnboardingAnswers

logger = logging.getLogger(__name__)


def _load_answers(path):
    if not path:
        return OnboardingAnswers()
    with open(path, "r", encoding="utf-8") as f:
        return OnboardingAnswers.from_dict(json.load(f))


def _print_job(job) -> None:
    print(f"\n{job.kind.label()} [{job.job_id}]")
    print(f"  Status: {job.status.value} ({job.progress}%)")
    if job.current_step:
        print(f"  Step: {job.current_step}")
    if job.result_ref:
        print(f"  Result: {job.result_ref}")
    if job.error:
        print(f"  Error: {job.error}")
    for key, value in job.stats.items():
        print(f"  {key.replace('_', ' ').title()}: {value}")


def cmd_build(manager: JobManager, args) -> int:
    seed_ids = [s.strip() for s in args.seeds.split(",") if s.strip()]
    job_id = manager.start_build(args.owner, seed_ids, _load_answers(args.answers))
    job = manager.wait(job_id)
    _print_job(job)
    if job.status.value != "complete":
        return 1

    world = load_world(manager.store, args.owner)
    print(f"\n{world.name}\n{world.description}\n")
    for intersection in world.intersections:
        print(f"  - {intersection.name}: {intersection.description}")
    return 0


def cmd_generate(manager: JobManager, args) -> int:
    try:
        world = load_world(manager.store, args.owner)
    except WorldNotFound:
        print(f"No world found for {args.owner}. Run 'build' first.")
        return 1

    try:
        job_id = manager.start_generate(world, args.intersection)
    except KeyError:
        print(f"World '{world.name}' has no intersection named {args.intersection!r}")
        return 1
    except RegenerationCooldown as e:
        print(str(e))
        return 1

    job = manager.wait(job_id)
    _print_job(job)
    return 0 if job.status.value == "complete" else 1


def cmd_status(manager: JobManager, args) -> int:
    job = manager.poll_status(args.job_id)
    if job is None:
        print(f"Job not found: {args.job_id}")
        return 1
    _print_job(job)
    return 0


def main():
    """Entry point"""
    parser = argparse.ArgumentParser(
        description="Build a taste world and generate intersection playlists"
    )
    parser.add_argument(
        "--config",
        default=os.getenv("TASTE_WORLD_CONFIG", "config.yaml"),
        help="Path to config.yaml (default: config.yaml or $TASTE_WORLD_CONFIG)",
    )
    add_logging_args(parser)
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Build (or rebuild) the owner's taste world")
    build.add_argument("--owner", required=True, help="Catalog user id")
    build.add_argument("--seeds", required=True, help="Comma-separated seed track ids")
    build.add_argument("--answers", help="JSON file with questionnaire answers")

    generate = sub.add_parser("generate", help="Generate playlists for the owner's world")
    generate.add_argument("--owner", required=True, help="Catalog user id")
    generate.add_argument(
        "--intersection",
        help="Regenerate only this intersection (subject to the cooldown)",
    )

    status = sub.add_parser("status", help="Show a stored job record")
    status.add_argument("job_id")

    args = parser.parse_args()

    if not os.path.exists(args.config):
        print(f"Error: {args.config} not found")
        print("\nCopy config.example.yaml to config.yaml and fill in your API credentials.\n")
        sys.exit(1)

    try:
        config = Config(args.config)
    except ValueError as e:
        print(f"\nConfiguration Error: {e}")
        print("\nPlease check your config.yaml file.\n")
        sys.exit(1)

    configure_logging(
        level=resolve_log_level(args),
        log_file=args.log_file or config.log_file,
        show_run_id=args.show_run_id,
    )

    manager = JobManager.from_config(config)
    handlers = {"build": cmd_build, "generate": cmd_generate, "status": cmd_status}
    try:
        code = handlers[args.command](manager, args)
    finally:
        manager.shutdown()
    sys.exit(code)


if __name__ == "__main__":
    main()
