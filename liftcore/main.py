"""
Command-line entry point: replay a recorded frame log through a session.

The log is JSON lines. Frame lines are compacted frames
({"t": 1.23, "joints": {"left_knee": [x, y, conf], ...}}); control lines
carry an "event" key:
    {"event": "exercise", "name": "Barbell Back Squat"}
    {"event": "calibrate"}                   # next frame is the neutral stance
    {"event": "end_set", "load_kg": 100.0}
"""

import argparse
import json
import logging
import sys
from typing import Iterator, List, Optional

from liftcore.config import get_settings
from liftcore.cv.exercise_profiles import default_profile_store
from liftcore.cv.pose import CompactFrame, PoseFrame
from liftcore.cv.session_pipeline import SessionPipeline
from liftcore.schemas import UserContext

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def read_log(path: str) -> Iterator[dict]:
    with open(path) as f:
        for line_number, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping malformed line {line_number}: {e}")


def to_frame(entry: dict) -> PoseFrame:
    compact = CompactFrame.from_dict(entry)
    return PoseFrame.from_raw(compact.timestamp, compact.points, settings.pose_confidence_threshold)


def replay(
    path: str,
    exercise: Optional[str],
    user: UserContext,
    final_load_kg: Optional[float] = None
) -> dict:
    """Replay a log and return a JSON-serializable session report."""
    pipeline = SessionPipeline(default_profile_store(), settings)
    pipeline.set_user_context(user)
    if exercise:
        pipeline.select_exercise(exercise)

    reps: List[dict] = []
    pipeline.rep_events.subscribe(lambda e: reps.append({
        "rep": e.rep_number,
        "form_score": e.form_score,
        "rom": round(e.rom_degrees, 1),
        "mean_velocity": e.mean_concentric_velocity,
    }))
    pipeline.notices.subscribe(lambda n: logger.warning(f"Notice: {n}"))
    pipeline.form_issues.subscribe(lambda i: logger.info(f"Form issue: {i.name} ({i.severity.value})"))

    calibrate_next = False
    for entry in read_log(path):
        event = entry.get("event")
        if event == "exercise":
            pipeline.select_exercise(entry["name"])
        elif event == "calibrate":
            calibrate_next = True
        elif event == "end_set":
            pipeline.end_set(float(entry.get("load_kg", 0.0)))
        elif event is None:
            frame = to_frame(entry)
            if calibrate_next:
                pipeline.calibrate(frame=frame)
                calibrate_next = False
            pipeline.process_frame(frame)
        else:
            logger.warning(f"Unknown event: {event}")

    if pipeline.current_reps:
        if final_load_kg is None:
            raise SystemExit("Log ends mid-set; pass --load to close the last set")
        pipeline.end_set(final_load_kg)

    outcome = pipeline.end_session()
    lp = outcome.lp
    return {
        "sets": [
            {
                "exercise": s.record.exercise,
                "reps": s.record.reps,
                "load_kg": s.record.load_kg,
                "effective_load_kg": s.record.effective_load_kg,
                "form_score": s.record.form_score,
                "velocity_loss_percent": round(s.fatigue.velocity_loss_percent, 1),
                "auto_stop": s.fatigue.auto_stop,
                "rpe": s.rpe.rpe,
                "rir": s.rpe.reps_in_reserve,
            }
            for s in pipeline.set_summaries_so_far
        ],
        "reps": reps,
        "peak_velocity": pipeline.session_peak_velocity,
        "ranking": {
            "computed": lp.computed,
            "session_delta": lp.session_delta,
            "cumulative_points": lp.cumulative_points,
            "tier": lp.tier.value,
            "series_wins": lp.series_wins,
            "promoted": lp.promoted,
        },
    }


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Replay a recorded pose frame log")
    parser.add_argument("log", help="JSON-lines frame log")
    parser.add_argument("--exercise", help="Exercise profile name (or set in the log)")
    parser.add_argument("--load", type=float, help="Load for a set left open at end of log")
    parser.add_argument("--height", type=float, help="User height in cm")
    parser.add_argument("--bodyweight", type=float, help="User bodyweight in kg")
    parser.add_argument("--sex", choices=["male", "female"])
    parser.add_argument("--list-exercises", action="store_true")
    args = parser.parse_args(argv)

    if args.list_exercises:
        for name in default_profile_store().names():
            print(name)
        return 0

    user = UserContext(height_cm=args.height, bodyweight_kg=args.bodyweight, sex=args.sex)
    logger.info(f"Starting {settings.app_name} replay of {args.log}")
    report = replay(args.log, args.exercise, user, args.load)
    json.dump(report, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
