"""Workflow orchestration engine."""
