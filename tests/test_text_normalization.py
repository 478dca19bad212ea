import unittest

from audio_library.core.text import (
    canonical_key,
    normalize_artist,
    normalize_match_text,
    normalize_text,
    normalize_title,
    repair_mojibake,
    split_artists,
)


class TestNormalizeTitle(unittest.TestCase):
    def test_strips_parenthesized_decoration(self) -> None:
        self.assertEqual(normalize_title("Hotel California (Live)"), "Hotel California")

    def test_strips_fullwidth_and_cjk_brackets(self) -> None:
        self.assertEqual(normalize_title("晴天（官方版）"), "晴天")
        self.assertEqual(normalize_title("稻香【无损】"), "稻香")
        self.assertEqual(normalize_title("Song [Remastered 2011]"), "Song")
        self.assertEqual(normalize_title("Song {demo}"), "Song")

    def test_strips_artist_prefix_and_extension(self) -> None:
        self.assertEqual(normalize_title("Eagles - Hotel California.mp3"), "Hotel California")
        self.assertEqual(normalize_title("周杰伦 ～ 晴天"), "晴天")

    def test_keeps_hyphenated_words(self) -> None:
        self.assertEqual(normalize_title("Ob-La-Di"), "Ob-La-Di")
        self.assertEqual(normalize_title("Yesterday"), "Yesterday")

    def test_strips_track_number_prefix(self) -> None:
        self.assertEqual(normalize_title("03. Take Five"), "Take Five")
        self.assertEqual(normalize_title("7 - Teardrop"), "Teardrop")

    def test_strips_decorative_suffix_tokens(self) -> None:
        self.assertEqual(normalize_title("Numb Live"), "Numb")
        self.assertEqual(normalize_title("Numb remix"), "Numb")
        self.assertEqual(normalize_title("小幸运 伴奏"), "小幸运")
        self.assertEqual(normalize_title("小幸运纯音乐"), "小幸运")

    def test_collapses_whitespace(self) -> None:
        self.assertEqual(normalize_title("  Take    Five  "), "Take Five")

    def test_falls_back_when_everything_is_decoration(self) -> None:
        self.assertEqual(normalize_title("(Intro)"), "(Intro)")

    def test_empty_input(self) -> None:
        self.assertEqual(normalize_title(None), "")
        self.assertEqual(normalize_title(""), "")


class TestNormalizeArtist(unittest.TestCase):
    def test_featuring_clause_removed(self) -> None:
        self.assertEqual(normalize_artist("Tom feat. Jerry"), "Tom")
        self.assertEqual(normalize_artist("Tom ft Jerry"), "Tom")
        self.assertEqual(normalize_artist("Tom featuring Jerry"), "Tom")

    def test_separators_keep_lead_artist(self) -> None:
        self.assertEqual(normalize_artist("A & B"), "A")
        self.assertEqual(normalize_artist("周杰伦、费玉清"), "周杰伦")
        self.assertEqual(normalize_artist("A，B"), "A")

    def test_brackets_removed(self) -> None:
        self.assertEqual(normalize_artist("Adele (UK)"), "Adele")

    def test_words_containing_ft_survive(self) -> None:
        self.assertEqual(normalize_artist("Taylor Swift"), "Taylor Swift")
        self.assertEqual(normalize_artist("Daft Punk"), "Daft Punk")


class TestSplitArtists(unittest.TestCase):
    def test_mixed_separators(self) -> None:
        self.assertEqual(split_artists("A/B&C"), ["A", "B", "C"])

    def test_cjk_separators(self) -> None:
        self.assertEqual(split_artists("周杰伦、费玉清"), ["周杰伦", "费玉清"])
        self.assertEqual(split_artists("林俊杰，蔡卓妍"), ["林俊杰", "蔡卓妍"])

    def test_featuring_and_versus(self) -> None:
        self.assertEqual(split_artists("Daft Punk feat. Pharrell Williams"), ["Daft Punk", "Pharrell Williams"])
        self.assertEqual(split_artists("Artist A vs Artist B"), ["Artist A", "Artist B"])

    def test_html_escaped_ampersand(self) -> None:
        self.assertEqual(split_artists("Simon &amp; Garfunkel"), ["Simon", "Garfunkel"])

    def test_exact_duplicates_removed_in_order(self) -> None:
        self.assertEqual(split_artists("B/A/B"), ["B", "A"])

    def test_case_variants_are_kept_for_the_canonical_stage(self) -> None:
        self.assertEqual(split_artists("Adele/adele"), ["Adele", "adele"])

    def test_names_are_not_cut_inside_words(self) -> None:
        self.assertEqual(split_artists("Evanescence"), ["Evanescence"])
        self.assertEqual(split_artists("Daft Punk"), ["Daft Punk"])

    def test_empty(self) -> None:
        self.assertEqual(split_artists(""), [])
        self.assertEqual(split_artists(None), [])
        self.assertEqual(split_artists(" / "), [])


class TestCanonicalKey(unittest.TestCase):
    def test_case_and_spacing_fold_together(self) -> None:
        self.assertEqual(canonical_key("The Beatles"), "thebeatles")
        self.assertEqual(canonical_key("the  beatles"), canonical_key("TheBeatles"))

    def test_punctuation_removed(self) -> None:
        self.assertEqual(canonical_key("AC/DC"), "acdc")

    def test_cjk_kept(self) -> None:
        self.assertEqual(canonical_key("周 杰 伦"), "周杰伦")
        self.assertEqual(canonical_key("あいみょん"), "あいみょん")

    def test_empty(self) -> None:
        self.assertEqual(canonical_key(None), "")
        self.assertEqual(canonical_key("!!!"), "")


class TestMatchText(unittest.TestCase):
    def test_fullwidth_folded_and_lowered(self) -> None:
        self.assertEqual(normalize_match_text("ＡＢＣ　Song"), "abc song")

    def test_control_characters_become_spaces(self) -> None:
        self.assertEqual(normalize_match_text("Hello\tWorld\n"), "hello world")

    def test_none(self) -> None:
        self.assertEqual(normalize_match_text(None), "")


class TestMojibake(unittest.TestCase):
    def test_latin1_decoded_utf8_is_repaired(self) -> None:
        garbled = "周杰伦".encode("utf-8").decode("latin-1")
        self.assertEqual(repair_mojibake(garbled), "周杰伦")

    def test_clean_text_untouched(self) -> None:
        self.assertEqual(repair_mojibake("Hotel California"), "Hotel California")
        self.assertEqual(repair_mojibake("晴天"), "晴天")

    def test_unrepairable_text_returned_as_is(self) -> None:
        weird = "§§§ ☃☃☃"
        self.assertEqual(repair_mojibake(weird), weird)

    def test_normalize_text_trims(self) -> None:
        self.assertEqual(normalize_text("  Rock  "), "Rock")
        self.assertEqual(normalize_text(None), "")


if __name__ == "__main__":
    unittest.main()
