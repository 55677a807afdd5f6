"""Shared fixtures for the test suite."""

from unittest.mock import MagicMock

import pytest


@pytest.fixture
def scripted_provider():
    """Provider mock whose complete() returns the given responses in order."""

    def build(*responses):
        provider = MagicMock()
        provider.complete.side_effect = list(responses)
        return provider

    return build
