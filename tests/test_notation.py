"""Tests for compiling dice notation into groups and templates."""

import pytest

from dicetray.errors import CompileError
from dicetray.notation import compile_formula, expand_shorthands
from dicetray.records import RollGroup


class TestCompile:
    def test_single_group(self) -> None:
        compiled = compile_formula("1d20")
        assert compiled.groups == [RollGroup("d20", 1)]
        assert compiled.template == "__G0__"

    def test_count_defaults_to_one(self) -> None:
        assert compile_formula("d6").groups == [RollGroup("d6", 1)]

    def test_keep_highest(self) -> None:
        compiled = compile_formula("2d20kh1 + 1d4")
        assert compiled.groups == [RollGroup("d20", 2, "kh", 1), RollGroup("d4", 1)]
        assert compiled.template == "__G0__ + __G1__"

    def test_keep_count_defaults_to_one(self) -> None:
        assert compile_formula("4d6kl").groups == [RollGroup("d6", 4, "kl", 1)]

    def test_keep_average_has_no_count(self) -> None:
        assert compile_formula("3d6ka").groups == [RollGroup("d6", 3, "ka", None)]

    def test_groups_in_order_of_appearance(self) -> None:
        compiled = compile_formula("1d4 * (2d8 - 1d100)")
        assert [g.type for g in compiled.groups] == ["d4", "d8", "d100"]
        assert compiled.template == "__G0__ * (__G1__ - __G2__)"

    def test_case_insensitive(self) -> None:
        compiled = compile_formula("2D20KH1")
        assert compiled.groups == [RollGroup("d20", 2, "kh", 1)]

    def test_constants_and_functions_survive(self) -> None:
        assert compile_formula("max(1d6, 3) + 2").template == "max(__G0__, 3) + 2"


class TestShorthands:
    def test_expand(self) -> None:
        assert expand_shorthands("max(2d20)") == "2d20kh1"
        assert expand_shorthands("min( 2d20 )") == "2d20kl1"
        assert expand_shorthands("avg(3d6)") == "3d6ka"

    def test_only_a_lone_dice_term(self) -> None:
        assert expand_shorthands("max(1d6, 3)") == "max(1d6, 3)"

    def test_compiles_to_keep_group(self) -> None:
        compiled = compile_formula("max(2d20) + 3")
        assert compiled.groups == [RollGroup("d20", 2, "kh", 1)]
        assert compiled.template == "__G0__ + 3"

    def test_avg_inside_splice(self) -> None:
        compiled = compile_formula("max(*avg(3d6), 10)")
        assert compiled.groups == [RollGroup("d6", 3, "ka", None)]
        assert compiled.template == "max(*__G0__, 10)"


class TestPhysicalCount:
    def test_d100_is_two_dice(self) -> None:
        assert compile_formula("3d100").groups[0].physical_count == 6

    def test_other_dice_are_one(self) -> None:
        assert compile_formula("3d12").groups[0].physical_count == 3


class TestInvalid:
    @pytest.mark.parametrize("formula", [
        "5",
        "",
        "1 + 2",
        "1d7",
        "1d6 +",
        "1d6 1d4",
        "1d6 & 2",
        "(1d6",
        "0d6",
        "roll(1d6)",
        "hello world",
        "١d20 + ٢d6",
    ])
    def test_rejected(self, formula: str) -> None:
        with pytest.raises(CompileError):
            compile_formula(formula)

    def test_unsupported_die_names_the_formula(self) -> None:
        with pytest.raises(CompileError, match="1d6 \\+ 1d7"):
            compile_formula("1d6 + 1d7")

    def test_division_by_zero_group_is_allowed(self) -> None:
        # Dice count as 0 during the syntax check, so this must not fail.
        assert compile_formula("10 / 1d6").template == "10 / __G0__"
