"""Tests para el parser de resultados JSONL."""

import json

from bulk_editor.services.bulk_operations.result_parser import parse_result_lines


def _line(payload) -> str:
    return json.dumps(payload)


class TestParseResultLines:
    """Tests para parse_result_lines."""

    def test_counts_successful_and_failed_lines(self):
        """Debe contar líneas exitosas y con userErrors."""
        text = "\n".join(
            [
                _line({"data": {"productVariantsBulkUpdate": {"product": {"id": "gid://shopify/Product/1"}, "userErrors": []}}}),
                _line(
                    {
                        "data": {
                            "productVariantsBulkUpdate": {
                                "product": {"id": "gid://shopify/Product/2"},
                                "userErrors": [{"field": ["variants", "0", "price"], "message": "Price is invalid"}],
                            }
                        }
                    }
                ),
            ]
        )

        results = parse_result_lines(text)

        assert results.successful == 1
        assert results.failed == 1
        assert len(results.errors) == 1
        error = results.errors[0]
        assert error.message == "Price is invalid"
        assert error.field == "variants.0.price"
        assert error.record_id == "gid://shopify/Product/2"

    def test_line_number_maps_failure_to_job_record(self):
        """Debe usar __lineNumber para ubicar el producto de una línea fallida."""
        record_ids = ["gid://shopify/Product/1", "gid://shopify/Product/2"]
        text = "\n".join(
            [
                _line({"data": {"productUpdate": {"product": {"id": record_ids[0]}, "userErrors": []}}, "__lineNumber": 0}),
                _line(
                    {
                        "data": {"productUpdate": {"product": None, "userErrors": [{"field": ["tags"], "message": "bad"}]}},
                        "__lineNumber": 1,
                    }
                ),
            ]
        )

        results = parse_result_lines(text, record_ids)

        assert (results.successful, results.failed) == (1, 1)
        assert results.errors[0].record_id == "gid://shopify/Product/2"

    def test_line_number_without_record_ids_leaves_record_unknown(self):
        """Debe dejar record_id vacío si no hay forma de identificar el producto."""
        text = _line(
            {"data": {"productUpdate": {"product": None, "userErrors": [{"message": "bad"}]}}, "__lineNumber": 5}
        )

        results = parse_result_lines(text, ["gid://shopify/Product/1"])

        assert results.errors[0].record_id is None

    def test_malformed_line_is_reported_and_skipped(self):
        """Debe registrar la línea inválida sin afectar los contadores."""
        text = "\n".join(
            [
                _line({"data": {"productUpdate": {"product": {"id": "gid://shopify/Product/1"}, "userErrors": []}}}),
                "{not json",
                _line({"data": {"productUpdate": {"product": {"id": "gid://shopify/Product/3"}, "userErrors": []}}}),
            ]
        )

        results = parse_result_lines(text)

        assert results.successful == 2
        assert results.failed == 0
        assert [error.message for error in results.errors] == ["Failed to parse result line 2"]

    def test_blank_lines_are_ignored(self):
        """Debe ignorar líneas vacías sin contarlas."""
        text = "\n\n" + _line({"data": {"productUpdate": {"userErrors": []}}}) + "\n   \n"
        results = parse_result_lines(text)
        assert (results.successful, results.failed, results.errors) == (1, 0, [])

    def test_empty_file_gives_empty_summary(self):
        """Debe devolver contadores en cero para un archivo vacío."""
        results = parse_result_lines("")
        assert (results.successful, results.failed, results.errors) == (0, 0, [])

    def test_top_level_graphql_errors_count_as_failures(self):
        """Debe tratar errores GraphQL de nivel superior como fallos."""
        text = _line({"errors": [{"message": "Throttled"}], "__parentId": "gid://shopify/Product/4"})
        results = parse_result_lines(text)

        assert results.failed == 1
        assert results.errors[0].message == "Throttled"
        assert results.errors[0].record_id == "gid://shopify/Product/4"

    def test_non_object_line_is_a_parse_error(self):
        """Debe rechazar líneas que no son objetos JSON."""
        results = parse_result_lines("[1, 2]")
        assert results.successful == 0
        assert results.errors[0].message == "Failed to parse result line 1"

    def test_failure_summary_lists_first_errors(self):
        """Debe resumir la cantidad de fallos y los primeros mensajes."""
        lines = [
            _line({"data": {"productUpdate": {"userErrors": [{"field": None, "message": f"error {n}"}]}}})
            for n in range(7)
        ]
        results = parse_result_lines("\n".join(lines))

        summary = results.failure_summary()
        assert summary.startswith("7 items failed. First errors: ")
        assert "error 4" in summary
        assert "error 5" not in summary
        assert parse_result_lines("").failure_summary() is None
