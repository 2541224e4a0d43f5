"""Prometheus metrics definitions."""

from prometheus_client import Counter, Histogram

# Trigger metrics
TRIGGERS_RECEIVED = Counter(
    "ruleflow_triggers_received_total",
    "Total number of triggers received",
    ["source"],
)

TRIGGERS_PROCESSED = Counter(
    "ruleflow_triggers_processed_total",
    "Total number of triggers processed",
    ["source", "status"],
)

# Rule metrics
RULES_EXECUTED = Counter(
    "ruleflow_rules_executed_total",
    "Total number of rule executions by outcome",
    ["status"],
)

RULE_LATENCY = Histogram(
    "ruleflow_rule_latency_seconds",
    "Rule execution latency in seconds",
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Action metrics
ACTIONS_EXECUTED = Counter(
    "ruleflow_actions_executed_total",
    "Total number of action invocations",
    ["action_type", "status"],
)

ACTION_LATENCY = Histogram(
    "ruleflow_action_latency_seconds",
    "Action execution latency in seconds",
    ["action_type"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
