"""Tests for the lazy top-level ``burrow`` namespace."""

import pytest

import burrow


class TestLazyImports:
    @pytest.mark.parametrize("name", burrow.__all__)
    def test_every_export_resolves(self, name: str) -> None:
        assert getattr(burrow, name) is not None

    def test_same_object_as_submodule(self) -> None:
        from burrow.routing.route import Handlers

        assert burrow.Handlers is Handlers

    def test_unknown_name(self) -> None:
        with pytest.raises(AttributeError):
            burrow.does_not_exist  # noqa: B018
