"""Tests for the story decoding step."""

import json

import pytest

from story_extractor.core.models import Scene
from story_extractor.errors import DecodeError
from story_extractor.steps.decoder import StoryDecoderStep, deduplicate_scenes, scene_key


@pytest.fixture
def decoder():
    return StoryDecoderStep()


def test_decodes_json_text(decoder):
    payload = json.dumps({
        "title": "The Lighthouse",
        "author": "Gemini",
        "scenes": [
            {"text": "Once upon a time", "imageUrl": "https://img.example.com/a.png",
             "imageWidth": 640, "imageHeight": 480},
            {"text": "The end", "imageUrl": None},
        ],
    })

    story = decoder.decode(payload)

    assert story.title == "The Lighthouse"
    assert story.author == "Gemini"
    assert [s.text for s in story.scenes] == ["Once upon a time", "The end"]
    assert story.scenes[0].image_ref == "https://img.example.com/a.png"
    assert story.scenes[0].image_width == 640
    assert story.scenes[0].image_height == 480
    assert story.scenes[1].image_ref is None


def test_accepts_bytes_and_mappings(decoder):
    data = {"title": "T", "author": "A", "scenes": [{"text": "x", "imageUrl": None}]}
    assert decoder.decode(json.dumps(data).encode("utf-8")).title == "T"
    assert decoder.decode(data).scenes[0].text == "x"


@pytest.mark.parametrize("payload", [
    {"title": "No scenes", "author": "A"},
    {"title": "Null scenes", "author": "A", "scenes": None},
])
def test_missing_scenes_become_empty_list(decoder, payload):
    story = decoder.decode(payload)
    assert story.scenes == []


def test_missing_title_and_author_get_defaults(decoder):
    story = decoder.decode({"scenes": []})
    assert story.title == "Untitled Story"
    assert story.author == ""


@pytest.mark.parametrize("payload", [
    "",
    "   ",
    "not json",
    "[1, 2, 3]",
    b"\xff\xfe",
    {"scenes": "nope"},
    {"scenes": [42]},
    {"scenes": [{"text": 5}]},
    {"scenes": [{"text": "x", "imageUrl": 7}]},
    {"scenes": [{"text": "x", "imageWidth": "wide"}]},
    {"scenes": [{"text": "x", "imageHeight": 1.5}]},
    {"title": ["list"], "scenes": []},
])
def test_malformed_payload_raises_decode_error(decoder, payload):
    with pytest.raises(DecodeError):
        decoder.decode(payload)


def test_none_payload_raises_decode_error(decoder):
    with pytest.raises(DecodeError):
        decoder.decode(None)


def test_empty_scenes_are_dropped(decoder):
    story = decoder.decode({"scenes": [
        {"text": "   ", "imageUrl": None},
        {"text": "", "imageUrl": "  "},
        {"text": "kept", "imageUrl": None},
        {"text": "", "imageUrl": "https://img.example.com/only-image.png"},
    ]})

    assert len(story.scenes) == 2
    assert story.scenes[0].text == "kept"
    assert story.scenes[1].text == ""
    assert story.scenes[1].image_ref == "https://img.example.com/only-image.png"


def test_duplicates_removed_in_first_occurrence_order(decoder):
    scenes = [
        {"text": "a", "imageUrl": "https://img.example.com/1.png"},
        {"text": "b", "imageUrl": None},
        {"text": "a", "imageUrl": "https://img.example.com/1.png"},
        {"text": "c", "imageUrl": "https://img.example.com/3.png"},
        {"text": "b ", "imageUrl": None},
        {"text": "a", "imageUrl": "https://img.example.com/2.png"},
    ]
    story = decoder.decode({"scenes": scenes})

    # 6 scenes, 2 exact duplicates
    assert len(story.scenes) == 4
    assert [(s.text, s.image_ref) for s in story.scenes] == [
        ("a", "https://img.example.com/1.png"),
        ("b", None),
        ("c", "https://img.example.com/3.png"),
        ("a", "https://img.example.com/2.png"),
    ]


def test_same_text_different_image_is_not_a_duplicate():
    first = Scene(text="same", image_ref="https://img.example.com/1.png")
    second = Scene(text="same", image_ref=None)
    assert scene_key(first) != scene_key(second)
    assert deduplicate_scenes([first, second]) == [first, second]


def test_scenario_three_scenes_one_duplicate(decoder):
    story = decoder.decode({
        "title": "Scenario",
        "author": "Gemini",
        "scenes": [
            {"text": "Page one", "imageUrl": None},
            {"text": "Page one", "imageUrl": None},
            {"text": "Page two", "imageUrl": "https://img.example.com/two.png"},
        ],
    })

    assert [s.text for s in story.scenes] == ["Page one", "Page two"]
    assert story.image_count == 1


def test_round_trips_through_to_dict(decoder):
    payload = {
        "title": "T",
        "author": "A",
        "scenes": [{"text": "x", "imageUrl": "https://img.example.com/x.png", "imageWidth": 10}],
    }
    story = decoder.decode(payload)
    assert decoder.decode(story.to_dict()) == story


def test_execute_records_duration(decoder):
    decoder.execute({"scenes": []})
    assert decoder.last_duration is not None
