# Orchestration services for the mass update pipeline
