"""BlockWage escrowed payroll settlement."""

__version__ = "0.1.0"
