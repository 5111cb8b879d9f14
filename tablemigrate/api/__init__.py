"""HTTP API for submitting and inspecting migrations."""
