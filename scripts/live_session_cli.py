"""
Live Session CLI — run a pickup session from the terminal.

Every invocation reconnects to MongoDB and resumes the active session, so
the command line can be closed and reopened at any point without losing a
game.

Usage:
    python scripts/live_session_cli.py start --date 2026-10-19 --location "Rec Center" Ana Ben Cal Dee
    python scripts/live_session_cli.py teams --a Ana Ben --b Cal Dee
    python scripts/live_session_cli.py winner a
    python scripts/live_session_cli.py rotate --stay Cal --join Eve
    python scripts/live_session_cli.py rotate --full --join Eve Fay
    python scripts/live_session_cli.py undo
    python scripts/live_session_cli.py standings
    python scripts/live_session_cli.py end
"""

import sys
import os
import asyncio
import argparse
import logging
from datetime import date

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from live_session import config
from live_session.controller import SessionController
from live_session.errors import LiveSessionError, RosterInputError
from live_session.planner import PlannerStage
from live_session.snapshots import SnapshotStore
from live_session.store import SessionStore
from models.games import Team

config.configure_logging()
logger = logging.getLogger("LiveSessionCLI")


def _print_roster(controller: SessionController) -> None:
    roster = controller.roster
    print()
    print(f"  Game {controller.game_number}  |  {controller.session.date}"
          + (f"  |  {controller.session.location}" if controller.session.location else ""))
    print("-" * 56)
    for team in (Team.A, Team.B):
        streak = controller.win_streak(team)
        flame = "  (hot streak)" if streak >= 3 else ""
        print(f"  {team.label}: {', '.join(roster.team(team)) or '-'}{flame}")
    print(f"  Bench : {', '.join(roster.bench) or '-'}")
    if controller.rotation_pending:
        print("  >> Rotation pending: run `rotate` (or `reshoot` + `teams`).")
    print()


def _print_standings(controller: SessionController) -> None:
    print()
    print(f"  {'#':>2}  {'Player':<20} {'W-L':>7} {'Win%':>7}")
    print("-" * 56)
    for rank, row in enumerate(controller.standings(), start=1):
        pct = f"{row.win_rate * 100:.1f}%" if row.games_played else "N/A"
        print(f"  {rank:>2}  {row.name:<20} {row.games_won:>3}-{row.games_lost:<3} {pct:>7}")
    print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a live pickup session.")
    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="Start a new live session.")
    start.add_argument("players", nargs="+", help="Player names (at least 4).")
    start.add_argument("--date", default=date.today().isoformat(), help="Session date, YYYY-MM-DD.")
    start.add_argument("--location", default=None, help="Where the run is.")

    sub.add_parser("status", help="Show teams, bench and game number.")

    teams = sub.add_parser("teams", help="Pick both teams (initial setup or after a reshoot).")
    teams.add_argument("--a", nargs="+", required=True, help="Team A players.")
    teams.add_argument("--b", nargs="+", required=True, help="Team B players.")

    winner = sub.add_parser("winner", help="Record the current game's winner.")
    winner.add_argument("team", choices=["a", "b"])

    rotate = sub.add_parser("rotate", help="Rotate the losing side after a game.")
    rotate.add_argument("--stay", nargs="*", default=[], help="Losing-team players who stay on.")
    rotate.add_argument("--join", nargs="*", default=[], help="Bench players who come in.")
    rotate.add_argument("--full", action="store_true", help="Nobody stays; the whole side comes off the bench.")

    sub.add_parser("reshoot", help="Throw out the rotation and redraw teams.")
    sub.add_parser("undo", help="Undo the last recorded game.")

    add = sub.add_parser("add-player", help="Add a late arrival to the bench.")
    add.add_argument("name")

    sub.add_parser("standings", help="Show session standings.")
    sub.add_parser("end", help="End the session and save the aggregate.")

    abandon = sub.add_parser("abandon", help="Discard the session without saving.")
    abandon.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt.")
    return parser


async def run(args: argparse.Namespace, store: SessionStore, snapshots: SnapshotStore) -> int:
    if args.command == "start":
        controller = SessionController(store, snapshots)
        session = await controller.start(args.date, args.location, args.players)
        print(f"  Live session started ({session.id}). Pick teams with `teams`.")
        _print_roster(controller)
        return 0

    controller = await SessionController.resume_active(store, snapshots)
    if controller is None:
        print("  No active live session. Start one with `start`.")
        return 1

    if args.command == "status":
        _print_roster(controller)

    elif args.command == "teams":
        controller.set_teams(args.a, args.b)
        _print_roster(controller)

    elif args.command == "winner":
        outcome = await controller.report_winner(Team.A if args.team == "a" else Team.B)
        print(f"  Game {outcome.record.game_number}: {outcome.winner.label} wins.")
        if not outcome.totals_saved:
            print("  Warning: player totals were not saved. They will be rewritten on the next command.")
        planner = controller.begin_rotation()
        if planner.stage is PlannerStage.CONFIRMED:
            controller.rotate(planner)
            print("  Bench is empty; same teams run it back.")
        _print_roster(controller)

    elif args.command == "rotate":
        planner = controller.begin_rotation()
        if planner.stage is not PlannerStage.CONFIRMED:
            planner.choose_stayers([] if args.full else args.stay)
        if planner.stage is PlannerStage.AWAITING_JOINERS:
            planner.choose_joiners(args.join)
            planner.confirm()
        controller.rotate(planner)
        _print_roster(controller)

    elif args.command == "reshoot":
        pool = controller.reshoot()
        print(f"  Pick new teams from: {', '.join(pool)}")

    elif args.command == "undo":
        record = await controller.undo()
        print(f"  Game {record.game_number} undone.")
        _print_roster(controller)

    elif args.command == "add-player":
        await controller.add_player(args.name)
        print(f"  {args.name} added to the bench.")

    elif args.command == "standings":
        _print_standings(controller)

    elif args.command == "end":
        aggregate = await controller.end()
        print(f"  Session saved: {len(aggregate.players)} players, {len(controller.games)} games.")

    elif args.command == "abandon":
        if not args.yes:
            answer = input("  Abandon this session without saving? [y/N] ").strip().lower()
            if answer not in ("y", "yes"):
                print("  Aborted.")
                return 0
        await controller.abandon()
        print("  Session abandoned.")

    return 0


async def main() -> int:
    args = build_parser().parse_args()

    store = SessionStore()
    connected = await store.connect()
    if not connected:
        logger.error("Failed to connect to MongoDB. Nothing was changed.")
        return 2

    try:
        return await run(args, store, SnapshotStore())
    except RosterInputError as e:
        print(f"  {e}")
        return 1
    except LiveSessionError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        await store.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
