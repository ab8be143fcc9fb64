import random

from cloudreel.backend.library.catalog import build_catalog, classify
from cloudreel.backend.library.models import EntryKind, FileIndex
from cloudreel.config.settings import LibrarySettings

from .conftest import LIBRARY_FILES, make_file


def _catalog(files, library=None):
    return build_catalog(FileIndex(files), library or LibrarySettings())


def test_scenario_one_movie_and_one_series():
    catalog = _catalog(
        [
            make_file("/movies/Alpha/alpha.mp4"),
            make_file("/series/Beta/Season 1/S01E01.mp4"),
            make_file("/series/Beta/Season 1/S01E02.mp4"),
        ]
    )

    assert len(catalog.movies) == 1
    assert catalog.movies[0].folder_name == "Alpha"
    assert [show.name for show in catalog.series] == ["Beta"]
    beta = catalog.series[0]
    assert list(beta.seasons) == ["Season 1"]
    assert [ep.episode_number for ep in beta.seasons["Season 1"]] == [1, 2]


def test_episodes_are_ordered_by_number_not_listing_order():
    catalog = _catalog(
        [
            make_file("/series/Show/Season 1/S01E02.mp4"),
            make_file("/series/Show/Season 1/S01E01.mp4"),
            make_file("/series/Show/Season 1/S01E10.mp4"),
        ]
    )

    episodes = catalog.episodes_in_order("Show", "Season 1")
    assert [ep.episode_number for ep in episodes] == [1, 2, 10]


def test_unparsed_files_follow_parsed_ones_by_filename():
    catalog = _catalog(
        [
            make_file("/series/Show/Season 1/Zeta extras.mp4"),
            make_file("/series/Show/Season 1/S01E02.mp4"),
            make_file("/series/Show/Season 1/Bloopers.mp4"),
            make_file("/series/Show/Season 1/S01E01.mp4"),
        ]
    )

    names = [ep.name for ep in catalog.episodes_in_order("Show", "Season 1")]
    assert names == ["S01E01.mp4", "S01E02.mp4", "Bloopers.mp4", "Zeta extras.mp4"]


def test_build_is_deterministic_regardless_of_input_order():
    files = list(LIBRARY_FILES) + [
        make_file("/series/Beta/Season 10/S10E01.mp4"),
        make_file("/movies/Gamma.Movie/gamma.mkv"),
    ]
    expected = _catalog(files).as_dict()
    for seed in range(5):
        shuffled = list(files)
        random.Random(seed).shuffle(shuffled)
        assert _catalog(shuffled).as_dict() == expected


def test_seasons_sort_numerically():
    catalog = _catalog(
        [
            make_file("/series/Show/Season 10/S10E01.mp4"),
            make_file("/series/Show/Season 2/S02E01.mp4"),
            make_file("/series/Show/Season 1/S01E01.mp4"),
        ]
    )
    assert catalog.get_series("Show").season_labels() == ["Season 1", "Season 2", "Season 10"]


def test_next_episode_within_and_across_seasons():
    catalog = _catalog(LIBRARY_FILES)

    assert catalog.next_episode("id:b101").id == "id:b102"
    assert catalog.next_episode("id:b102").id == "id:b201"
    assert catalog.next_episode("id:b201") is None


def test_movie_never_has_next_episode():
    catalog = _catalog(LIBRARY_FILES)

    assert catalog.kind_of("id:alpha") is EntryKind.MOVIE
    assert catalog.next_episode("id:alpha") is None
    assert catalog.next_episode("id:unknown") is None


def test_non_video_files_stay_in_index_and_resolve_artwork():
    catalog = _catalog(LIBRARY_FILES)
    alpha = catalog.lookup("id:alpha")

    assert "id:alpha-thumb" in catalog.index
    assert catalog.lookup("id:alpha-thumb") is None
    assert catalog.thumbnail_path(alpha) == "/movies/Alpha/thumbnail.jpg"
    assert catalog.description_path(alpha) == "/movies/Alpha/description.txt"
    assert catalog.thumbnail_path(catalog.get_series("Beta")) is None


def test_series_artwork_lives_in_show_folder():
    catalog = _catalog(LIBRARY_FILES + [make_file("/series/Beta/thumbnail.jpg")])
    assert catalog.thumbnail_path(catalog.get_series("Beta")) == "/series/Beta/thumbnail.jpg"


def test_episode_directly_in_show_folder_uses_parsed_season():
    catalog = _catalog(
        [
            make_file("/series/Show/S02E03.mp4"),
            make_file("/series/Show/pilot.mp4"),
        ]
    )
    show = catalog.get_series("Show")
    assert show.season_labels() == ["Season 1", "Season 2"]
    assert show.seasons["Season 2"][0].episode_number == 3


def test_classify_closed_variants():
    library = LibrarySettings()

    assert classify(make_file("/movies/Alpha/alpha.mp4"), library).kind is EntryKind.MOVIE
    assert classify(make_file("/series/Beta/Season 1/S01E01.mp4"), library).kind is EntryKind.EPISODE
    assert classify(make_file("/series/loose.mp4"), library).kind is EntryKind.UNCLASSIFIED
    assert classify(make_file("/movies/Alpha/notes.txt"), library).kind is EntryKind.UNCLASSIFIED
    assert classify(make_file("/other/clip.mp4"), library).kind is EntryKind.UNCLASSIFIED


def test_movie_directly_in_movies_root_uses_file_stem():
    catalog = _catalog([make_file("/movies/The.Movie.mp4")])
    movie = catalog.movies[0]
    assert movie.folder_name == "The.Movie"
    assert movie.display_name == "The Movie"


def test_videos_nested_inside_a_movie_folder_are_ignored():
    catalog = _catalog([
        make_file("/movies/Alpha/alpha.mp4", "id:alpha"),
        make_file("/movies/Alpha/Extras/trailer.mp4", "id:trailer"),
    ])
    assert [movie.id for movie in catalog.movies] == ["id:alpha"]
    assert catalog.lookup("id:trailer") is None


def test_library_root_prefixes_category_folders():
    library = LibrarySettings(root="/Media", movies_root="/movies", series_root="/series")
    catalog = _catalog([make_file("/Media/Movies/Alpha/alpha.mp4")], library)
    assert [movie.folder_name for movie in catalog.movies] == ["Alpha"]


def test_index_payload_round_trip():
    index = FileIndex(LIBRARY_FILES)
    restored = FileIndex.from_payload(index.to_payload())
    assert dict(restored) == dict(index)
