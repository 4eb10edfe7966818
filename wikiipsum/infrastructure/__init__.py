"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the pipeline to the outside world (the Wikipedia API, the console,
configuration files) by implementing the interfaces defined in the domain layer.
"""
