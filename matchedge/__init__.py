"""Match Edge — fair odds, conditional rules and scoreline modelling for football."""

__version__ = "1.0.0"
