"""Tests for the SavedVariables evaluator and the Lua-to-JSON classifier."""

import pytest

from deathlogger_agent.lua_reader import LuaParseError, LuaTableParser, evaluate_file_content, to_json_value


class TestEvaluate:
    """Test evaluation of global assignments."""

    def test_client_written_file(self):
        """Test the layout the game client writes, comments included."""
        content = '''
DeathLoggerDB = {
	["deaths"] = {
		{
			["at"] = 1700000000,
			["player"] = "Thrall",
			["x"] = 52.41,
		}, -- [1]
	},
	["screenshotOn"] = true,
}
'''
        env = evaluate_file_content(content)

        deaths = env["DeathLoggerDB"]["deaths"]
        assert deaths[1] == {"at": 1700000000, "player": "Thrall", "x": 52.41}
        assert env["DeathLoggerDB"]["screenshotOn"] is True

    def test_scalar_types(self):
        """Test integers, floats, hex, negatives, booleans and strings keep their types."""
        env = evaluate_file_content(
            'a = 42\nb = 4.5\nc = 0x1F\nd = -7\ne = false\nf = "text"\ng = 1e3\nh = -0.25'
        )

        assert env["a"] == 42 and isinstance(env["a"], int)
        assert env["b"] == 4.5
        assert env["c"] == 31
        assert env["d"] == -7
        assert env["e"] is False
        assert env["f"] == "text"
        assert env["g"] == 1000.0 and isinstance(env["g"], float)
        assert env["h"] == -0.25

    def test_later_assignment_wins(self):
        """Test that reassigning a global overwrites it."""
        env = evaluate_file_content("X = 1\nX = 2;")
        assert env["X"] == 2

    def test_nil_assignment_removes_global(self):
        """Test that assigning nil leaves the global unset."""
        env = evaluate_file_content("X = 1\nX = nil")
        assert "X" not in env

    def test_bare_identifier_reads_earlier_global(self):
        """Test that a name evaluates to a global assigned before it, nil otherwise."""
        env = evaluate_file_content("A = 5\nB = A\nC = Unknown")
        assert env["B"] == 5
        assert "C" not in env

    def test_fresh_environment_per_call(self):
        """Test that one evaluation does not leak globals into the next."""
        parser = LuaTableParser()
        parser.evaluate("Leaked = 1")

        assert parser.evaluate("B = Leaked") == {}

    def test_empty_file(self):
        """Test that an empty or comment-only chunk has no globals."""
        assert evaluate_file_content("") == {}
        assert evaluate_file_content("-- nothing here\n--[[ block ]]") == {}

    def test_byte_order_mark_is_ignored(self):
        """Test that a UTF-8 BOM before the first assignment is skipped."""
        assert evaluate_file_content("\ufeffX = 1") == {"X": 1}


class TestTables:
    """Test table constructor semantics."""

    def test_positional_named_and_bracketed_fields(self):
        """Test all three field forms in one constructor."""
        env = evaluate_file_content('T = { "a", "b"; name = "n", [10] = "ten", ["k"] = 1, }')

        assert env["T"] == {1: "a", 2: "b", "name": "n", 10: "ten", "k": 1}

    def test_nil_values_are_not_stored(self):
        """Test that nil entries leave holes but still consume positional indexes."""
        env = evaluate_file_content('T = { "a", nil, "c", x = nil }')
        assert env["T"] == {1: "a", 3: "c"}

    def test_integral_float_keys_normalize(self):
        """Test that [2.0] addresses the same slot as [2]."""
        env = evaluate_file_content('T = { [2.0] = "x", [2.5] = "y" }')
        assert env["T"] == {2: "x", 2.5: "y"}

    def test_nested_tables(self):
        """Test arbitrarily nested constructors."""
        env = evaluate_file_content("T = { { { { 1 } } } }")
        assert env["T"] == {1: {1: {1: {1: 1}}}}

    def test_nil_key_is_an_error(self):
        """Test that a nil table index is rejected."""
        with pytest.raises(LuaParseError):
            evaluate_file_content("T = { [nil] = 1 }")


class TestStrings:
    """Test string literal decoding."""

    def test_escapes(self):
        """Test common escape sequences."""
        env = evaluate_file_content(r'S = "line\nnext\t\"q\" \\ \65\066"')
        assert env["S"] == 'line\nnext\t"q" \\ AB'

    def test_decimal_escapes_form_utf8(self):
        """Test that decimal byte escapes combine into UTF-8 characters."""
        env = evaluate_file_content(r'S = "Caf\195\169"')
        assert env["S"] == "Café"

    def test_single_quotes_and_long_strings(self):
        """Test single-quoted strings and long brackets of any level."""
        env = evaluate_file_content("A = 'it\\'s'\nB = [[\nraw \\n]]\nC = [==[a]]b]==]")

        assert env["A"] == "it's"
        assert env["B"] == "raw \\n"
        assert env["C"] == "a]]b"

    def test_item_links(self):
        """Test long item hyperlinks with escaped pipes and the other quote kind inside."""
        link = r'"\124cffa335ee\124Hitem:19019::::::::60:::::\124h[Thunderfury, Blessed Blade of the Windseeker]\124h\124r it' + "'s" + '"'
        env = evaluate_file_content(f"S = {link}\nT = 'say \"hi\"'")

        assert env["S"] == "|cffa335ee|Hitem:19019::::::::60:::::|h[Thunderfury, Blessed Blade of the Windseeker]|h|r it's"
        assert env["T"] == 'say "hi"'

    def test_unicode_passthrough(self):
        """Test non-ASCII characters written directly."""
        env = evaluate_file_content('S = "Orgrimmar – Valley of Strength"')
        assert env["S"] == "Orgrimmar – Valley of Strength"


class TestMalformedInput:
    """Test that broken or truncated files raise LuaParseError."""

    @pytest.mark.parametrize("content", [
        'DeathLoggerDB = {\n\t["deaths"] = {\n\t\t{\n\t\t\t["at"] = 17',
        'DeathLoggerDB = { ["player"] = "Thr',
        "DeathLoggerDB = ",
        "DeathLoggerDB",
        "DeathLoggerDB = { 1 2 }",
        "local x = 1",
        "print(1)",
        "X = function() end",
        "X = [[unterminated",
        "--[[ unterminated comment",
    ])
    def test_raises(self, content):
        """Test truncated and unsupported chunks."""
        with pytest.raises(LuaParseError):
            evaluate_file_content(content)

    def test_newline_inside_short_string(self):
        """Test that an unescaped newline ends a string with an error."""
        with pytest.raises(LuaParseError):
            evaluate_file_content('S = "abc\ndef"')


class TestToJsonValue:
    """Test the Lua-to-JSON classifier."""

    def test_scalars_pass_through(self):
        """Test scalars of every type."""
        for value in (None, True, 3, 2.5, "s"):
            assert to_json_value(value) == value

    def test_integer_keyed_table_is_array(self):
        """Test that integer keys produce a list ordered by key, gaps closed."""
        assert to_json_value({3: "c", 1: "a", 7: "g"}) == ["a", "c", "g"]

    def test_mixed_keys_make_object(self):
        """Test that any non-integer key turns the table into an object with string keys."""
        assert to_json_value({1: "a", "n": 2}) == {"1": "a", "n": 2}

    def test_empty_table_is_object(self):
        """Test that an empty table becomes an empty object."""
        assert to_json_value({}) == {}

    def test_other_key_types(self):
        """Test string rendering of boolean and float keys."""
        assert to_json_value({True: 1, 1.5: 2}) == {"true": 1, "1.5": 2}

    def test_recursion(self):
        """Test nested conversion."""
        value = {"bags": {1: {"bagID": 0, "slots": {1: {"itemID": 6948}}}}}
        assert to_json_value(value) == {"bags": [{"bagID": 0, "slots": [{"itemID": 6948}]}]}
