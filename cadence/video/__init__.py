"""Video generation: model catalogue, budget guard, usage records and orchestration."""
