"""Demo data generation for the Therapy Scheduling Engine."""
