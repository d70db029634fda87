"""memora: spaced-repetition review scheduling engine."""

from memora.consts import VERSION

__version__ = VERSION
