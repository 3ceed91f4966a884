"""CLI entrypoint for talentflow demos."""

from __future__ import annotations

from argparse import ArgumentParser
from pathlib import Path

from talentflow.demo.fixtures import SCENARIOS
from talentflow.demo.runner import format_feed, run_scenario


def main() -> None:
    parser = ArgumentParser(description="Run talentflow demo scenarios.")
    parser.add_argument(
        "scenario",
        choices=sorted(SCENARIOS),
        help="Scenario to run.",
    )
    parser.add_argument(
        "--workflows",
        default=None,
        type=Path,
        help="Path to a workflow templates YAML file (defaults to the bundled templates).",
    )
    args = parser.parse_args()

    result = run_scenario(SCENARIOS[args.scenario](), args.workflows)
    print(f"Scenario {args.scenario} completed for candidate {result.candidate_id}")
    print()
    for line in format_feed(result.activities):
        print(line)
    print()
    for execution in result.executions:
        print(f"workflow {execution.workflow_name!r}: {execution.status.value}")
    if result.metrics is not None:
        print()
        for stage in result.metrics.by_stage:
            if stage.count:
                print(
                    f"stage {stage.stage_name}: {stage.count} candidate(s), "
                    f"{stage.breached} breached, {stage.at_risk} at risk"
                )


if __name__ == "__main__":
    main()
