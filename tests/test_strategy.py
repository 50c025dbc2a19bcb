"""Tests for kmodbuild.strategy module."""

from __future__ import annotations

import pytest

from conftest import which_from
from kmodbuild.exceptions import UnsupportedVersionError
from kmodbuild.models import Toolchain
from kmodbuild.strategy import describe, product_family, select_strategy

ALL_TOOLS = which_from("clang", "ld.lld", "gcc", "make")


class TestProductFamily:
    @pytest.mark.parametrize("version", ["17.6.0", "17.6.4", "17.6.12"])
    def test_legacy_prefix(self, version):
        assert product_family(version)["variant"] == "legacy"

    @pytest.mark.parametrize("version", ["25.0.0", "25.1.0", "25.9.3"])
    def test_modern_prefix(self, version):
        assert product_family(version)["variant"] == "modern"

    @pytest.mark.parametrize("version", ["17.5.2", "16.2.5", "17.60.1", "24.0.0", "2.5.0", "125.0.0"])
    def test_unlisted_prefix_rejected(self, version):
        with pytest.raises(UnsupportedVersionError, match=f"Unsupported VMware version: {version}"):
            product_family(version)


class TestSelectStrategy:
    def test_scenario_a_legacy_gcc(self, make_profile):
        strategy = select_strategy(make_profile("17.6.4", "gcc"), which=ALL_TOOLS)
        assert strategy.module_variant == "legacy"
        assert strategy.procedure == "tarball-repack"
        assert strategy.toolchain == Toolchain("gcc", "default")
        assert strategy.module_version == "17.6.4"
        assert strategy.toolchain_from_build_system is False

    def test_legacy_clang_with_tools_prefers_direct_make(self, make_profile):
        strategy = select_strategy(make_profile("17.6.4", "clang"), which=ALL_TOOLS)
        assert strategy.procedure == "direct-make"
        assert strategy.toolchain == Toolchain("clang", "lld")

    def test_legacy_clang_without_lld_falls_back_to_tarball(self, make_profile):
        strategy = select_strategy(make_profile("17.6.4", "clang"), which=which_from("clang", "gcc"))
        assert strategy.procedure == "tarball-repack"
        assert strategy.toolchain == Toolchain("gcc")

    def test_legacy_clang_without_clang_falls_back_to_tarball(self, make_profile):
        strategy = select_strategy(make_profile("17.6.4", "clang"), which=which_from("ld.lld", "gcc"))
        assert strategy.procedure == "tarball-repack"

    def test_legacy_unknown_compiler_uses_tarball(self, make_profile):
        strategy = select_strategy(make_profile("17.6.2", "unknown"), which=ALL_TOOLS)
        assert strategy.procedure == "tarball-repack"
        assert strategy.toolchain.compiler == "gcc"

    def test_scenario_b_modern_clang(self, make_profile):
        strategy = select_strategy(make_profile("25.1.0", "clang"), which=which_from())
        assert strategy.module_variant == "modern"
        assert strategy.procedure == "direct-make"
        assert strategy.toolchain == Toolchain("clang", "lld")
        assert strategy.module_version == "25.0.0"
        assert strategy.toolchain_from_build_system is True

    @pytest.mark.parametrize("compiler", ["gcc", "unknown"])
    def test_modern_non_clang_uses_gcc(self, make_profile, compiler):
        strategy = select_strategy(make_profile("25.0.0", compiler), which=ALL_TOOLS)
        assert strategy.procedure == "direct-make"
        assert strategy.toolchain == Toolchain("gcc")

    def test_modern_never_consults_which(self, make_profile):
        def exploding_which(binary):
            raise AssertionError(f"unexpected lookup of {binary}")

        strategy = select_strategy(make_profile("25.0.0", "clang"), which=exploding_which)
        assert strategy.module_variant == "modern"

    def test_unsupported_version(self, make_profile):
        with pytest.raises(UnsupportedVersionError) as exc:
            select_strategy(make_profile("16.2.5", "gcc"), which=ALL_TOOLS)
        assert any("17.6.4" in hint for hint in exc.value.hints)


class TestDescribe:
    def test_modern_mentions_makefile_detection(self, make_profile):
        strategy = select_strategy(make_profile("25.0.0", "clang"))
        assert "auto-detected" in describe(strategy)

    def test_legacy_clang_lists_linker(self, make_profile):
        strategy = select_strategy(make_profile("17.6.4", "clang"), which=ALL_TOOLS)
        assert describe(strategy).endswith("clang + ld.lld")
