"""Minimal demonstration of the Indigo agent loop against a real Jira site."""

import asyncio

from indigo_core.agents.indigo_agent import IndigoAgent
from indigo_core.flows.context import ExternalState


def print_progress(message: str, kind: str) -> None:
    print(f"[{kind}] {message}")


async def main() -> None:
    agent = IndigoAgent(progress=print_progress)
    snapshot = ExternalState(current_user="me", available_options={"projects": ["SETI"]})
    goal = "Find the epic about onboarding in SETI and assign it to me"
    outcome = await agent.run(goal, state_provider=lambda: snapshot)
    print("User:", goal)
    print("Agent:", outcome.status, "-", outcome.message)


if __name__ == "__main__":
    asyncio.run(main())
