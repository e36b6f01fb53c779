"""Allow running sync as: python -m lending_core.orchestrator <command> [--config path]."""

from lending_core.orchestrator.runner import main

main()
