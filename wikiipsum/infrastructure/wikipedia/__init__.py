"""Wikipedia REST API client implementing the `SummarySource` interface."""
