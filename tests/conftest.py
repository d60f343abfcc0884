"""Shared fixtures."""

import pytest

from builders import RecordingExporter, hero_symbol
from converter.config import ConverterConfig
from converter.context import ConversionContext, GlobalBuildState


@pytest.fixture
def exporter():
    return RecordingExporter()


@pytest.fixture
def hero():
    return hero_symbol()


@pytest.fixture
def state():
    return GlobalBuildState.create(ConverterConfig(), "test", 24.0)


@pytest.fixture
def root_context(state):
    return ConversionContext(global_state=state, bone=state.skeleton.find_bone("root"))
