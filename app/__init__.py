"""Console composition root, wire schemas and telemetry views."""
