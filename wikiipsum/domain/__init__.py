"""Domain Layer: value objects, events and interfaces for the retrieval pipeline."""
