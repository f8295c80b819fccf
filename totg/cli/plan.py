"""
CLI entry point for the totg-plan command.

Reads a JSON planning job, time-parameterizes its waypoints and writes the
resampled trajectory as JSON.

With num_waypoints set in the job, the resampling period is derived from the
optimal duration and the job's resample_dt is not used.

Exit status: 0 on success, 1 if the job cannot be read or decoded, 2 if the
trajectory cannot be parameterized.
"""

import argparse
import logging
import sys
from pathlib import Path

import msgspec

import totg.config as cfg
from totg.config import TRACE
from totg.protocol.wire import PlanResult, decode_request, encode_result
from totg.time_parameterization import TimeOptimalTrajectoryGeneration, totg_compute_time_stamps

logger = logging.getLogger("totg.cli.plan")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="totg-plan", description="Time-optimal trajectory generation for waypoint jobs"
    )
    parser.add_argument("job", help="Path to a JSON planning job ('-' reads stdin)")
    parser.add_argument("-o", "--output", help="Write the result here instead of stdout")

    # Verbose logging options
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity; -v=INFO, -vv=DEBUG, -vvv=TRACE",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Enable quiet logging (ERROR level)",
    )
    parser.add_argument(
        "--log-level",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set specific log level",
    )
    return parser


def _resolve_log_level(args: argparse.Namespace) -> int:
    # Precedence:
    #   1) Explicit --log-level
    #   2) Verbose / quiet flags
    #   3) Environment-driven TRACE (TOTG_TRACE=1 via TRACE_ENABLED)
    #   4) Default WARNING, so stdout stays clean for the result
    if args.log_level:
        if args.log_level == "TRACE":
            cfg.TRACE_ENABLED = True
            return TRACE
        return getattr(logging, args.log_level)
    if args.verbose >= 3:
        cfg.TRACE_ENABLED = True
        return TRACE
    if args.verbose >= 2:
        return logging.DEBUG
    if args.verbose == 1:
        return logging.INFO
    if args.quiet:
        return logging.ERROR
    if cfg.TRACE_ENABLED:
        return TRACE
    return logging.WARNING


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the planner."""
    args = _build_parser().parse_args(argv)
    log_level = _resolve_log_level(args)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    third_party_log_level = log_level if log_level >= logging.INFO else logging.INFO
    logging.getLogger("numba").setLevel(third_party_log_level)

    # Pre-compile numba JIT functions before planning
    from totg.utils.warmup import warmup_jit

    warmup_jit()

    try:
        data = sys.stdin.buffer.read() if args.job == "-" else Path(args.job).read_bytes()
    except OSError as e:
        logger.error(f"Cannot read job {args.job}: {e}")
        return 1
    try:
        request = decode_request(data)
    except (msgspec.DecodeError, msgspec.ValidationError) as e:
        logger.error(f"Invalid job {args.job}: {e}")
        return 1

    trajectory = request.to_trajectory()
    if request.num_waypoints is not None:
        ok = totg_compute_time_stamps(
            request.num_waypoints,
            trajectory,
            request.velocity_scaling,
            request.acceleration_scaling,
            path_tolerance=request.path_tolerance,
            min_angle_change=request.min_angle_change,
        )
    else:
        totg = TimeOptimalTrajectoryGeneration(
            path_tolerance=request.path_tolerance,
            resample_dt=request.resample_dt,
            min_angle_change=request.min_angle_change,
        )
        ok = totg.compute_time_stamps(
            trajectory, request.velocity_scaling, request.acceleration_scaling
        )
    if not ok:
        logger.error("Planning failed for job %s", args.job)
        return 2

    payload = encode_result(PlanResult.from_trajectory(trajectory))
    if args.output:
        Path(args.output).write_bytes(payload + b"\n")
        logger.info(
            "Wrote %d waypoints (%.4fs) to %s", trajectory.waypoint_count, trajectory.duration, args.output
        )
    else:
        sys.stdout.buffer.write(payload + b"\n")
        sys.stdout.flush()
    return 0


def main_entry():
    """Entry point for the totg-plan command."""
    raise SystemExit(main())


if __name__ == "__main__":
    main_entry()
