import tempfile
import unittest
from pathlib import Path

from audio_library.database import Condition, Database, Raw, clamp_page
from audio_library.models import PersistenceError


def _artist(idx: int, **overrides):
    row = {
        "id": f"a{idx:03d}",
        "name": f"Artist {idx:03d}",
        "normalized_name": f"artist{idx:03d}",
        "track_count": idx,
        "album_count": 0,
        "genre": "rock" if idx % 2 else "jazz",
        "social_media": [],
        "created_at": f"2024-01-01T00:00:{idx % 60:02d}+00:00",
    }
    row.update(overrides)
    return row


class DatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = Database(":memory:")

    def tearDown(self) -> None:
        self.db.close()


class TestFilters(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.db.batch_insert("artists", [_artist(i) for i in range(1, 11)])

    def test_equality_and_bool(self) -> None:
        self.db.insert(
            "tracks",
            {"id": "t1", "path": "/m/a.mp3", "title": "A", "favorite": True, "artists": ["X"]},
        )
        self.db.insert("tracks", {"id": "t2", "path": "/m/b.mp3", "title": "B", "favorite": False})
        rows = self.db.query_all("tracks", {"favorite": True})
        self.assertEqual([row["id"] for row in rows], ["t1"])
        self.assertEqual(rows[0]["artists"], ["X"])

    def test_comparison_operators(self) -> None:
        self.assertEqual(self.db.count("artists", {"track_count": Condition(">", 7)}), 3)
        self.assertEqual(self.db.count("artists", {"track_count": Condition("<=", 2)}), 2)
        self.assertEqual(self.db.count("artists", {"track_count": Condition("!=", 1)}), 9)

    def test_in_and_not_in(self) -> None:
        self.assertEqual(self.db.count("artists", {"id": Condition("IN", ["a001", "a002", "zzz"])}), 2)
        self.assertEqual(self.db.count("artists", {"id": Condition("NOT IN", ["a001"])}), 9)

    def test_empty_in_lists(self) -> None:
        self.assertEqual(self.db.count("artists", {"id": Condition("IN", [])}), 0)
        self.assertEqual(self.db.count("artists", {"id": Condition("NOT IN", [])}), 10)

    def test_between(self) -> None:
        self.assertEqual(self.db.count("artists", {"track_count": Condition("BETWEEN", [3, 5])}), 3)
        self.assertEqual(self.db.count("artists", {"track_count": Condition("NOT BETWEEN", [3, 5])}), 7)

    def test_like_wraps_wildcards(self) -> None:
        self.assertEqual(self.db.count("artists", {"name": Condition("LIKE", "ist 00")}), 9)
        self.assertEqual(self.db.count("artists", {"name": Condition("NOT LIKE", "010")}), 9)

    def test_list_of_conditions_on_same_column(self) -> None:
        filters = {"track_count": [Condition(">=", 3), Condition("<", 6)]}
        self.assertEqual(self.db.count("artists", filters), 3)

    def test_list_of_sub_filters(self) -> None:
        filters = {"group": [{"genre": "rock"}, {"track_count": Condition(">", 5)}]}
        self.assertEqual(self.db.count("artists", filters), 2)

    def test_raw_escape_hatch(self) -> None:
        raw = Raw("track_count % 5 = :mod", {"mod": 0})
        self.assertEqual(self.db.count("artists", {"custom": raw}), 2)

    def test_null_equality(self) -> None:
        self.assertEqual(self.db.count("artists", {"country": None}), 10)

    def test_unknown_column_rejected(self) -> None:
        with self.assertRaises(PersistenceError):
            self.db.query_all("artists", {"name; DROP TABLE artists": "x"})

    def test_unknown_table_rejected(self) -> None:
        with self.assertRaises(PersistenceError):
            self.db.count("nope")

    def test_unsupported_operator_rejected(self) -> None:
        with self.assertRaises(PersistenceError):
            self.db.count("artists", {"name": Condition("GLOB", "*")})

    def test_values_are_bound_not_interpolated(self) -> None:
        self.assertEqual(self.db.count("artists", {"name": "x' OR '1'='1"}), 0)


class TestWrites(DatabaseTestCase):
    def test_upsert_updates_on_conflict(self) -> None:
        self.db.upsert("artists", _artist(1))
        self.db.upsert("artists", _artist(1, name="Renamed"))
        rows = self.db.query_all("artists")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["name"], "Renamed")

    def test_insert_ignore_conflicts(self) -> None:
        self.assertEqual(self.db.insert("artists", _artist(1)), 1)
        self.assertEqual(self.db.insert("artists", _artist(1), ignore_conflicts=True), 0)
        with self.assertRaises(PersistenceError):
            self.db.insert("artists", _artist(1))

    def test_batch_insert_returns_rows_changed(self) -> None:
        self.assertEqual(self.db.batch_insert("artists", [_artist(i) for i in range(5)]), 5)
        self.assertEqual(self.db.batch_insert("artists", []), 0)

    def test_batch_insert_is_atomic(self) -> None:
        rows = [_artist(1), _artist(2), _artist(1)]
        with self.assertRaises(PersistenceError):
            self.db.batch_insert("artists", rows)
        self.assertEqual(self.db.count("artists"), 0)

    def test_update_and_delete_require_filter(self) -> None:
        self.db.insert("artists", _artist(1))
        with self.assertRaises(PersistenceError):
            self.db.update("artists", {"genre": "pop"}, {})
        with self.assertRaises(PersistenceError):
            self.db.delete("artists", {})
        self.assertEqual(self.db.update("artists", {"genre": "pop"}, {"id": "a001"}), 1)
        self.assertEqual(self.db.query_one("artists", {"id": "a001"})["genre"], "pop")
        self.assertEqual(self.db.delete("artists", {"id": "a001"}), 1)

    def test_update_can_filter_on_the_column_it_sets(self) -> None:
        self.db.insert("artists", _artist(1, genre="rock"))
        self.assertEqual(self.db.update("artists", {"genre": "pop"}, {"genre": "rock"}), 1)

    def test_increment(self) -> None:
        self.db.insert("artists", _artist(1, track_count=2))
        self.db.increment("artists", {"id": "a001"}, track_count=1, album_count=2)
        row = self.db.query_one("artists", {"id": "a001"})
        self.assertEqual((row["track_count"], row["album_count"]), (3, 2))

    def test_transaction_rolls_back(self) -> None:
        with self.assertRaises(RuntimeError):
            with self.db.transaction():
                self.db.insert("artists", _artist(1))
                with self.db.transaction():
                    self.db.insert("artists", _artist(2))
                raise RuntimeError("boom")
        self.assertEqual(self.db.count("artists"), 0)

    def test_file_database_persists(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "lib.sqlite3"
            db = Database(path)
            db.insert("artists", _artist(1))
            db.close()
            reopened = Database(path)
            self.assertEqual(reopened.count("artists"), 1)
            reopened.close()


class TestPagination(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.db.batch_insert("artists", [_artist(i) for i in range(1, 24)])

    def test_pages_cover_total_exactly(self) -> None:
        first = self.db.page("artists", page=1, page_size=5)
        total = first.pagination.total
        self.assertEqual(total, 23)
        self.assertEqual(first.pagination.pages, 5)
        seen = []
        for page in range(1, first.pagination.pages + 1):
            result = self.db.page("artists", page=page, page_size=5)
            self.assertLessEqual(len(result.data), 5)
            seen.extend(row["id"] for row in result.data)
        self.assertEqual(len(seen), total)
        self.assertEqual(len(set(seen)), total)

    def test_filtered_count_matches_data(self) -> None:
        result = self.db.page("artists", page=1, page_size=100, filters={"genre": "rock"})
        self.assertEqual(result.pagination.total, len(result.data))
        self.assertTrue(all(row["genre"] == "rock" for row in result.data))

    def test_invalid_sort_falls_back_to_default(self) -> None:
        result = self.db.page("artists", page=1, page_size=3, sort="bogus; DROP TABLE artists")
        self.assertEqual([row["name"] for row in result.data], ["Artist 001", "Artist 002", "Artist 003"])

    def test_sort_direction(self) -> None:
        result = self.db.page("artists", page=1, page_size=2, sort="track_count", order="desc")
        self.assertEqual([row["track_count"] for row in result.data], [23, 22])
        result = self.db.page("artists", page=1, page_size=2, sort="track_count", order="sideways")
        self.assertEqual([row["track_count"] for row in result.data], [1, 2])

    def test_page_bounds_are_clamped(self) -> None:
        result = self.db.page("artists", page=0, page_size=10_000)
        self.assertEqual(result.pagination.page, 1)
        self.assertEqual(result.pagination.page_size, 500)
        self.assertEqual(len(result.data), 23)
        self.assertEqual(clamp_page(-3, 0), (1, 1))
        self.assertEqual(clamp_page("x", None), (1, 20))

    def test_page_past_the_end_is_empty(self) -> None:
        result = self.db.page("artists", page=99, page_size=10)
        self.assertEqual(result.data, [])
        self.assertEqual(result.pagination.total, 23)

    def test_random_page_returns_requested_size(self) -> None:
        result = self.db.random_page("artists", page=1, page_size=7)
        self.assertEqual(len(result.data), 7)
        self.assertEqual(result.pagination.total, 23)

    def test_iterate_streams_every_row(self) -> None:
        self.assertEqual(len(list(self.db.iterate("artists"))), 23)


if __name__ == "__main__":
    unittest.main()
