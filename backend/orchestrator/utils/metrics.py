# /orchestrator/utils/metrics.py

from prometheus_client import Counter, Histogram

# This file defines all Prometheus metrics used for application monitoring.
# Centralizing them here makes them easy to find and manage.

# Orchestration Metrics
agent_messages_counter = Counter('agent_messages_total', 'Inbound messages processed', ['pipeline', 'status'])
pipeline_stage_counter = Counter('pipeline_stage_total', 'Pipeline stage executions', ['pipeline', 'stage', 'status'])
pipeline_duration_histogram = Histogram('pipeline_duration_seconds', 'Pipeline run duration in seconds', ['pipeline'])
workflow_steps_counter = Counter('workflow_steps_total', 'Autonomous workflow steps executed', ['action', 'status'])
autonomous_outcomes_counter = Counter('autonomous_outcomes_total', 'Outcomes of the autonomous path', ['outcome'])

# Collaborator Metrics
ai_requests_counter = Counter('ai_requests_total', 'Total completion requests', ['model', 'status'])
memory_operations_counter = Counter('memory_operations_total', 'Dynamic memory operations', ['operation', 'status'])
database_operations_counter = Counter('database_operations_total', 'Database operations', ['operation', 'status'])
external_api_counter = Counter('external_api_requests_total', 'Resource and channel API requests', ['service', 'status'])
circuit_breaker_trips_counter = Counter('circuit_breaker_trips_total', 'Circuit breakers opened', ['name'])

# Performance Metrics
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])
cache_operations = Counter('cache_operations_total', 'Cache operations', ['operation', 'status'])
