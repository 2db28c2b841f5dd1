"""CAPCOM: conversational command orchestration for an orbital simulation."""
