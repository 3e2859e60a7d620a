from __future__ import annotations

from pathlib import Path

import pytest

from block_scanner import UnmatchedBracesError
from effect_parser import (
    CaseInsensitiveDict,
    UnsupportedVectorLengthError,
    parse_effect_instance,
    parse_effects,
    parse_effects_file,
    unescape_x_string,
)


def test_parses_effect_path_and_technique() -> None:
    text = 'Material Foo { EffectInstance { "shader.fx"; EffectParamDWord{"technique";2;} } }'

    records = parse_effects(text)

    assert list(records) == ["Foo"]
    record = records["Foo"]
    assert record.effect_path == "shader.fx"
    assert record.integer_params["technique"] == 2


def test_material_lookup_is_case_insensitive() -> None:
    records = parse_effects('Material Car { EffectInstance { "car.fx"; } }')

    assert "car" in records
    assert records["CAR"].material_name == "Car"


def test_non_ascii_strings_do_not_hide_later_materials() -> None:
    text = (
        'Material Intro { EffectInstance { "intro.fx"; EffectParamString { "city"; "İstanbul"; } } }\n'
        'Material Foo { EffectInstance { "a.fx"; } }'
    )

    records = parse_effects(text)

    assert set(records) == {"Intro", "Foo"}
    assert records["intro"].string_params["city"] == "İstanbul"
    assert records["foo"].effect_path == "a.fx"


def test_escaped_backslashes_collapse_in_effect_path() -> None:
    text = r'Material X { EffectInstance { "..\\shaders\\X.fx"; } }'

    records = parse_effects(text)

    assert records["X"].effect_path == "..\\shaders\\X.fx"


def test_unescape_handles_quotes_and_backslash_runs() -> None:
    assert unescape_x_string(r'say \"hi\"') == 'say "hi"'
    assert unescape_x_string(r"a\\\\b") == "a\\\\b"
    assert unescape_x_string(r"plain\path") == "plain\\path"


def test_string_value_with_braces_does_not_break_parsing() -> None:
    text = (
        'Material Foo { EffectInstance { "s.fx"; '
        'EffectParamString{"note";"a{b}c";} EffectParamDWord{"technique";1;} } } '
        'Material Bar { EffectInstance { "b.fx"; } }'
    )

    records = parse_effects(text)

    assert set(records) == {"Foo", "Bar"}
    assert records["Foo"].string_params["note"] == "a{b}c"
    assert records["Foo"].integer_params["technique"] == 1
    assert records["Bar"].effect_path == "b.fx"


def test_keyword_qualified_effect_path_wins() -> None:
    body = 'EffectParamString { "fallback"; "other.fx"; } EffectFilename { "main.fx"; }'

    record = parse_effect_instance(body, "M")

    assert record.effect_path == "main.fx"


def test_effect_path_requires_shader_extension() -> None:
    body = '"readme.txt"; "Lighting.FX";'

    assert parse_effect_instance(body).effect_path == "Lighting.FX"


def test_float_list_skips_bad_token_and_stops_at_count() -> None:
    body = '"s.fx"; EffectParamFloats{"c";3;1.0,2.0,bogus,3.0;;}'

    record = parse_effect_instance(body, "M")

    assert record.vector_params["c"] == (1.0, 2.0, 3.0)


def test_float_list_ignores_values_beyond_count() -> None:
    body = '"s.fx"; EffectParamFloats{"c";2;1.5, -2e1, 7.0, 8.0;;}'

    assert parse_effect_instance(body).vector_params["c"] == (1.5, -20.0)


def test_float_list_with_too_few_valid_tokens_is_shorter() -> None:
    body = '"s.fx"; EffectParamFloats{"c";3;1.0, bogus;;}'

    assert parse_effect_instance(body).vector_params["c"] == (1.0,)


def test_float_list_without_valid_tokens_is_discarded() -> None:
    body = '"s.fx"; EffectParamFloats{"c";2;nope, x1, 0x;;}'

    record = parse_effect_instance(body)

    assert "c" not in record.vector_params


def test_float_tokens_are_locale_invariant() -> None:
    # "1,5" is two tokens, never the German decimal 1.5
    body = '"s.fx"; EffectParamFloats{"c";2;1,5;;}'

    assert parse_effect_instance(body).vector_params["c"] == (1.0, 5.0)


@pytest.mark.parametrize("count", [0, 5, 16])
def test_unsupported_vector_length_is_rejected(count: int) -> None:
    values = ", ".join(["1.0"] * max(count, 1))
    text = f'Material Bad {{ EffectInstance {{ "s.fx"; EffectParamFloats{{"m";{count};{values};;}} }} }}'

    with pytest.raises(UnsupportedVectorLengthError) as excinfo:
        parse_effects(text)

    assert excinfo.value.material_name == "Bad"
    assert excinfo.value.param_name == "m"
    assert "Bad" in str(excinfo.value)


def test_later_parameter_entries_overwrite_earlier_ones() -> None:
    body = (
        '"s.fx"; EffectParamDWord{"Technique";1;} EffectParamDWord{"technique";3;} '
        'EffectParamString{"tex";"a";} EffectParamString{"TEX";"b";}'
    )

    record = parse_effect_instance(body)

    assert dict(record.integer_params) == {"technique": 3}
    assert record.string_params["tex"] == "b"
    assert len(record.string_params) == 1


def test_dword_values_wrap_to_signed_32_bit() -> None:
    body = '"s.fx"; EffectParamDWord{"mask";4294967295;} EffectParamDWord{"neg";-7;}'

    record = parse_effect_instance(body)

    assert record.integer_params["mask"] == -1
    assert record.integer_params["neg"] == -7


def test_last_duplicate_material_wins() -> None:
    text = (
        'Material Paint { EffectInstance { "first.fx"; } } '
        'Material PAINT { EffectInstance { "second.fx"; } }'
    )

    records = parse_effects(text)

    assert len(records) == 1
    assert records["paint"].effect_path == "second.fx"


def test_materials_without_effect_are_skipped() -> None:
    text = (
        "Material Plain { 1.0;1.0;1.0;1.0;; TextureFilename { \"t.png\"; } } "
        'Material NoPath { EffectInstance { EffectParamDWord{"technique";1;} } } '
        'Material { EffectInstance { "anon.fx"; } } '
        'Material Good { EffectInstance { "good.fx"; } }'
    )

    records = parse_effects(text)

    assert list(records) == ["Good"]


def test_record_without_effect_is_still_returned_by_block_parser() -> None:
    record = parse_effect_instance('EffectParamDWord{"technique";1;}', "M")

    assert record.has_effect is False
    assert record.integer_params["technique"] == 1


def test_unmatched_braces_abort_whole_parse() -> None:
    text = 'Material Good { EffectInstance { "g.fx"; } } Material Broken { EffectInstance { "b.fx";'

    with pytest.raises(UnmatchedBracesError):
        parse_effects(text)


def test_case_insensitive_dict_keeps_latest_spelling() -> None:
    params = CaseInsensitiveDict({"Diffuse": 1})
    params["DIFFUSE"] = 2

    assert list(params) == ["DIFFUSE"]
    assert params["diffuse"] == 2
    assert params == {"DIFFUSE": 2}
    del params["Diffuse"]
    assert len(params) == 0


def test_parse_effects_file_reads_car_model(content_dir: Path) -> None:
    records = parse_effects_file(content_dir / "models" / "Car.x")

    assert set(records) == {"Car_Body", "Car_Glass"}
    body = records["car_body"]
    assert body.effect_path == "..\\shaders\\CarPaint.fx"
    assert body.string_params["diffuseTexture"] == "..\\textures\\Car.dds"
    assert body.vector_params["ambientColor"] == (0.1, 0.2, 0.3, 1.0)
    assert body.vector_params["shininess"] == (24.0,)
    assert records["car_glass"].vector_params["reflection"] == (0.5, 0.25)


def test_parse_effects_file_falls_back_on_invalid_utf8(tmp_path: Path) -> None:
    path = tmp_path / "legacy.x"
    path.write_bytes(b'Material Cafe { EffectInstance { "caf\xe9.fx"; } }')

    records = parse_effects_file(path)

    assert len(records) == 1
    assert next(iter(records.values())).effect_path.endswith(".fx")
