"""
Shared fixtures: constraints and a project idea that passes every gate.
"""

import json
import pytest

from quibit.models.constraints import ProjectConstraints
from quibit.models.idea import ProjectIdea


def build_idea_dict():
    """A fresh, mutable idea payload for go/postgresql at intermediate complexity."""
    return {
        "project": {
            "name": "Ledgerline Relay",
            "tagline": "Replayable webhook relay with idempotent redelivery",
            "description": {
                "summary": "A Go service that receives third-party webhooks, persists them and "
                           "redelivers them with idempotency keys.",
                "detailed_explanation": "Incoming webhooks are verified, written to a PostgreSQL append-only "
                                        "event table and fanned out to subscriber endpoints by an event-driven "
                                        "worker pool. Each delivery carries an idempotency key, failed deliveries "
                                        "are retried with exponential backoff, and operators can replay any "
                                        "time window.",
            },
            "problem_statement": {
                "problem": "Webhook senders retry inconsistently and receivers lose events during deploys.",
                "why_it_matters": "Lost or duplicated webhooks silently corrupt invoices, inventory and audit trails.",
                "current_solutions_and_gaps": "Hosted relays are expensive and opaque, while ad-hoc queues rarely "
                                              "support replay per endpoint.",
            },
            "target_users": {
                "primary": ["backend engineers at small startups"],
                "secondary": ["platform teams"],
                "use_cases": ["replay events after an outage", "audit delivered payloads"],
            },
            "value_proposition": {
                "key_benefits": ["No lost events across deploys", "Safe replays thanks to idempotency keys"],
                "why_this_project_is_interesting": "It combines an append-only event store, idempotency keys and "
                                                   "delivery retries under a strict latency budget.",
                "portfolio_value": "Shows system architecture, data model design and explicit trade-off "
                                   "reasoning in an interview.",
            },
            "mvp": {
                "goal": "Accept, persist and redeliver webhooks for one team with replay.",
                "must_have_features": [
                    "Signature verification for incoming webhooks",
                    "Append-only event table in PostgreSQL",
                    "Delivery worker with exponential backoff",
                    "Replay endpoint for a time window",
                ],
                "nice_to_have_features": [
                    "Web UI for browsing deliveries",
                    "Per-endpoint rate limit settings",
                    "Prometheus metrics export",
                ],
                "out_of_scope": [
                    "Payload transformation",
                    "Hosted multi-region deployment",
                    "Usage based invoicing",
                ],
            },
            "recommended_tech_stack": {
                "backend": "Go 1.22 with net/http",
                "frontend": "None (CLI and JSON API)",
                "database": "PostgreSQL 16",
                "infra": "Docker Compose",
                "justification": "Go keeps the worker pool simple and fast, and PostgreSQL gives transactional "
                                 "writes; we choose at-least-once delivery over exactly-once as the trade-off.",
            },
            "complexity": "intermediate",
            "estimated_duration": {
                "range": "2-4 weeks",
                "assumptions": "One developer working evenings.",
            },
            "future_extensions": ["Multi-region replication", "Schema validation per source"],
            "learning_outcomes": [
                "Designing idempotent consumers",
                "Backoff and retry policies",
                "Operating PostgreSQL as an event store",
            ],
        }
    }


@pytest.fixture
def constraints():
    return ProjectConstraints(
        app_type="backend-api",
        complexity="intermediate",
        tech_stack=["go", "postgresql"],
        database_preferences=["postgresql"],
        goal="portfolio project",
        timeframe="2-4 weeks",
    )


@pytest.fixture
def idea_dict():
    return build_idea_dict()


@pytest.fixture
def idea_json(idea_dict):
    return json.dumps(idea_dict)


@pytest.fixture
def valid_idea(idea_dict):
    return ProjectIdea.model_validate(idea_dict)
