#!/usr/bin/env python3
"""
Run one agent turn from the command line against the configured model and backend.
Reads MODEL_* and BACKEND_* settings from the environment or .env.

Usage: python run_turn.py "Save today's training plan: squats 5x5" --role trainer
"""
import argparse
import json
import logging
import sys

from coach_agent.config import settings
from coach_agent.errors import AgentError
from coach_agent.llm.orchestrator import TurnOrchestrator


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one agent turn")
    parser.add_argument("prompt")
    parser.add_argument("--role", default=None, help="doctor | rehab | nutritionist | trainer")
    parser.add_argument("--session-id", default=None)
    parser.add_argument("--token", default=None, help="bearer token for the records backend")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    def on_event(agent, label, detail=None):
        print(f"  [{agent}] {label} {json.dumps(detail or {}, ensure_ascii=False)}")

    print(f"🤖 Models: {', '.join(settings.candidate_models)}")
    print(f"🗄️  Backend: {settings.backend_base_url}")
    try:
        orch = TurnOrchestrator.from_settings(settings, token=args.token, role=args.role, session_id=args.session_id)
        result = orch.run_turn(args.prompt, on_event=on_event)
    except AgentError as e:
        print(f"❌ Turn failed: {e}", file=sys.stderr)
        return 1

    print(f"✅ Tools called: {result.called or 'none'} ({result.rounds} round(s), model {result.model_used})")
    print()
    print(result.text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
