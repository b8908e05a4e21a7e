"""clinicsend - scheduled appointment submission with bounded retries."""

__version__ = "0.1.0"
