#!/usr/bin/env python3
"""
Autonomy - Example Usage

This script demonstrates how to:
1. Configure a reasoning backend from AUTONOMY_* environment settings
2. Run a request through analysis, planning, execution and synthesis
3. Reuse the experience network across runs and save it to disk

Requires credentials for the configured LiteLLM model, e.g.:
    AUTONOMY_LLM__MODEL=gpt-4o-mini OPENAI_API_KEY=... \
        python3 examples/autonomous_run_example.py
"""

import asyncio
import sys

from autonomy.collective import ExperienceNetwork
from autonomy.config import get_config
from autonomy.core.errors import AutonomyError
from autonomy.core.logging import setup_logging
from autonomy.core.providers import get_provider_from_config
from autonomy.core.reasoning import ProviderReasoning
from autonomy.models import UserRequest
from autonomy.orchestration import AutonomyScheduler


async def run_examples():
    config = get_config()
    setup_logging(config.log_level)

    provider = get_provider_from_config(config)
    reasoning = ProviderReasoning(
        provider,
        max_tokens=config.llm.max_tokens,
        temperature=config.llm.temperature,
    )
    network = ExperienceNetwork(config.experience)
    scheduler = AutonomyScheduler(reasoning, network=network, config=config.scheduler)

    requests = [
        UserRequest(content="Compare three task queues for a small Python service", user_id="demo"),
        UserRequest(content="Compare task queues for a small Python web service", user_id="demo"),
    ]

    for request in requests:
        print("=" * 80)
        print(f"Request: {request.content}")
        print("-" * 80)

        try:
            result = await scheduler.run(request)
        except AutonomyError as e:
            print(f"❌ Run failed: {e}")
            return 1

        session = scheduler.get_session(result.session_id)
        print(f"✓ Session {session.status.value} in {session.duration_seconds or 0.0:.1f}s")
        print(f"  Objective: {result.analysis.main_objective}")
        for plan_id, outcome in result.outcomes.items():
            marker = "✓" if outcome.ok else "✗"
            print(f"  {marker} task {plan_id}")
        print()
        print(result.output)
        print()

    print("=" * 80)
    report = network.generate_network_report()
    print(f"Experience network: {report['node_count']} nodes, {report['edge_count']} edges")
    for suggestion in network.suggest_prompts("demo"):
        print(f"  {suggestion.description}: {suggestion.prompt} ({suggestion.confidence:.2f})")

    usage = provider.get_usage_stats()
    print(f"LLM usage: {usage['request_count']} calls, {usage['total_tokens']} tokens, ${usage['total_cost_usd']:.4f}")

    path = network.save_to_file("output/experience_network.json")
    print(f"Saved network to {path}")
    return 0


def main():
    """Run two related requests and show what the network learned."""
    return asyncio.run(run_examples())


if __name__ == "__main__":
    sys.exit(main())
