"""Tests for the SQL text helpers used by schema probes."""

from tre.catalog.data.probes import sqltext
from tre.catalog.data.probes.sqltext import SourceTable


class TestFinalSelect:
    """Verify the last top-level SELECT is isolated."""

    def test_plain_select(self):
        """A lone SELECT is returned without its trailing semicolon."""
        assert sqltext.final_select("SELECT a FROM t;") == "SELECT a FROM t"

    def test_skips_cte_body(self):
        """SELECTs inside a CTE are not top level."""
        sql = "WITH x AS (SELECT 1 AS a) SELECT a FROM x"
        assert sqltext.final_select(sql) == "SELECT a FROM x"

    def test_comments_removed(self):
        """Line and block comments are ignored."""
        sql = "-- SELECT junk\nSELECT a /* SELECT b */ FROM t"
        assert sqltext.final_select(sql).startswith("SELECT a")

    def test_select_inside_literal_ignored(self):
        """Keywords inside string literals are not matched."""
        sql = "SELECT 'select' AS word FROM t"
        assert sqltext.final_select(sql) == sql


class TestProjection:
    """Verify projection splitting and item parsing."""

    def test_split_top_level_commas(self):
        """Commas inside function calls do not split items."""
        items = sqltext.projection("SELECT a, b AS c, f(x, y) FROM t")
        assert items == ["a", "b AS c", "f(x, y)"]

    def test_distinct_prefix(self):
        """DISTINCT is not part of the first item."""
        assert sqltext.projection("SELECT DISTINCT a FROM t") == ["a"]

    def test_qualified_item(self):
        """qualifier.column AS alias parses into its parts."""
        assert sqltext.projection_item("d.cause AS c") == ("d", "cause", "c")

    def test_quoted_item(self):
        """Quoted identifiers are unquoted."""
        assert sqltext.projection_item('"Place of death"') == (
            None, "Place of death", None,
        )

    def test_star(self):
        """A bare star is recognized."""
        assert sqltext.projection_item("*") == (None, "*", None)

    def test_expression_is_none(self):
        """Expressions have no single source column."""
        assert sqltext.projection_item("age + 1") is None
        assert sqltext.projection_item("upper(place)") is None


class TestFromTables:
    """Verify FROM-clause table discovery."""

    def test_join_with_aliases(self):
        """Schema, table and alias are captured for each joined table."""
        sql = (
            "SELECT d.id FROM main.deaths d "
            "JOIN causes AS c ON d.cause = c.code WHERE c.code > 0"
        )
        assert sqltext.from_tables(sql) == [
            SourceTable("main", "deaths", "d"),
            SourceTable(None, "causes", "c"),
        ]

    def test_join_without_alias(self):
        """A table followed directly by JOIN has no alias."""
        tables = sqltext.from_tables("SELECT id FROM deaths LEFT JOIN causes ON 1 = 1")
        assert [t.table for t in tables] == ["deaths", "causes"]
        assert tables[0].alias is None

    def test_comma_join(self):
        """Comma-separated tables are all returned."""
        tables = sqltext.from_tables("SELECT id FROM deaths, causes")
        assert [t.table for t in tables] == ["deaths", "causes"]

    def test_no_from(self):
        """A SELECT without FROM has no tables."""
        assert sqltext.from_tables("SELECT 1") == []

    def test_key_prefers_alias(self):
        """The lookup key is the lower-cased alias, else the table."""
        assert SourceTable(None, "Deaths", "D").key == "d"
        assert SourceTable(None, "Deaths").key == "deaths"

    def test_cte_names(self):
        """CTE names are collected for exclusion."""
        sql = "WITH a AS (SELECT 1), b AS (SELECT 2) SELECT * FROM a, b"
        assert sqltext.cte_names(sql) == {"a", "b"}


class TestCheckValues:
    """Verify allowed-value extraction from check constraints."""

    def test_in_list(self):
        """col IN ('a', 'b') yields the literals in order."""
        definition = "CHECK (place IN ('home', 'facility', 'other'))"
        assert sqltext.check_values(definition, "place") == ["home", "facility", "other"]

    def test_in_list_other_column(self):
        """A constraint on another column does not match."""
        assert sqltext.check_values("CHECK (sex IN ('m', 'f'))", "place") is None

    def test_any_array(self):
        """PostgreSQL's = ANY (ARRAY[...]) form is recognized."""
        definition = (
            "CHECK (((place)::text = ANY ((ARRAY['home'::character varying, "
            "'other'::character varying])::text[])))"
        )
        assert sqltext.check_values(definition, "place") == ["home", "other"]

    def test_or_chain(self):
        """col = 'a' OR col = 'b' yields both literals."""
        definition = "CHECK (place = 'home' OR place = 'other')"
        assert sqltext.check_values(definition, "place") == ["home", "other"]

    def test_escaped_quote(self):
        """Doubled quotes inside literals are unescaped."""
        assert sqltext.string_literals("'it''s', 'x'") == ["it's", "x"]

    def test_range_check_is_none(self):
        """Non-enumerating constraints give None."""
        assert sqltext.check_values("CHECK (age >= 0)", "age") is None
