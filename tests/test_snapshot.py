import numpy as np
import pytest

from core.snapshot import (
    GAMMA_DTYPE,
    STRIKE_LAYOUT,
    THEO_LAYOUT,
    GammaDataset,
    GammaLevel,
    Side,
    classify_side,
    layout_for_name,
    parse,
)


STRIKE_CSV = (
    "price,gamma,type,flip\n"
    "4500,1.2,Call,4480\n"
    "4400,-0.8,Put,4480\n"
)


def test_parse_strike_layout():
    result = parse(STRIKE_CSV, STRIKE_LAYOUT)

    assert result.dataset == GammaDataset(
        (
            GammaLevel(4500.0, 1.2, Side.CALL, 4480.0),
            GammaLevel(4400.0, -0.8, Side.PUT, 4480.0),
        ),
        4480.0,
    )
    assert result.report.total_rows == 2
    assert result.report.accepted == 2
    assert result.report.dropped == 0


def test_parse_theo_layout_reads_price_from_fourth_column():
    text = (
        "Rank,TotalGamma,GammaType,TheoESPrice,GammaFlip\n"
        "1,2.5,BigCall,4512.25,4475.5\n"
        "2,-1.75,Put Wall,4390.75,4475.5\n"
    )
    dataset = parse(text, THEO_LAYOUT).dataset

    assert dataset.flip_level == pytest.approx(4475.5)
    assert [lvl.price for lvl in dataset.levels] == [4512.25, 4390.75]
    assert [lvl.side for lvl in dataset.levels] == [Side.CALL, Side.PUT]
    assert dataset.levels[1].total_gamma == pytest.approx(-1.75)


def test_parse_drops_bad_rows_and_keeps_going():
    text = (
        "price,gamma,type,flip\n"
        "4500,1.2,Call\n"          # too few columns
        "abc,1.0,Call,4480\n"      # non-numeric price
        "4450,,Put,4480\n"         # empty gamma
        "4425,0.3,Put,nan\n"       # non-finite flip
        "\n"                       # blank line
        "4400,-0.8,Put,4480\n"
    )
    result = parse(text, STRIKE_LAYOUT)

    assert [lvl.price for lvl in result.dataset.levels] == [4400.0]
    assert result.report.total_rows == 6
    assert result.report.dropped == 5
    reasons = [err.reason for err in result.report.row_errors]
    assert reasons == [
        "too_few_columns",
        "non_numeric",
        "non_numeric",
        "non_numeric",
        "too_few_columns",
    ]
    assert result.report.row_errors[0].line_no == 2


def test_five_column_layout_requires_five_columns():
    text = "a,b,c,d,e\n1,0.5,Call,4500\n"
    result = parse(text, THEO_LAYOUT)
    assert result.dataset.size == 0
    assert result.report.row_errors[0].reason == "too_few_columns"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Call", Side.CALL),
        ("BigCall", Side.CALL),
        ("Call Wall", Side.CALL),
        ("call", Side.PUT),
        ("Put", Side.PUT),
        ("", Side.PUT),
    ],
)
def test_classify_side_substring(raw, expected):
    assert classify_side(raw) is expected


@pytest.mark.parametrize("text", ["", "price,gamma,type,flip\n", "price,gamma,type,flip"])
def test_empty_or_header_only_is_empty_dataset(text):
    result = parse(text, STRIKE_LAYOUT)
    assert result.dataset == GammaDataset.empty()
    assert result.dataset.flip_level == 0.0
    assert result.report.total_rows == 0


def test_parse_is_deterministic():
    first = parse(STRIKE_CSV, STRIKE_LAYOUT)
    second = parse(STRIKE_CSV, STRIKE_LAYOUT)
    assert first.dataset == second.dataset
    assert first.report == second.report


def test_first_flip_level_wins_and_mismatches_are_reported():
    text = (
        "price,gamma,type,flip\n"
        "4500,1.2,Call,4480\n"
        "4400,-0.8,Put,4470\n"
    )
    result = parse(text, STRIKE_LAYOUT)

    assert result.dataset.flip_level == 4480.0
    assert result.dataset.size == 2
    mismatch = result.report.flip_inconsistencies[0]
    assert (mismatch.line_no, mismatch.value, mismatch.expected) == (3, 4470.0, 4480.0)
    assert "1 flip mismatches" in result.report.summary()


def test_parse_handles_crlf_and_padded_numbers():
    text = "price,gamma,type,flip\r\n 4500 , 1.2 ,Call, 4480\r\n"
    dataset = parse(text, STRIKE_LAYOUT).dataset
    assert dataset.levels == (GammaLevel(4500.0, 1.2, Side.CALL, 4480.0),)


def test_dataset_array_and_span():
    dataset = parse(STRIKE_CSV, STRIKE_LAYOUT).dataset

    arr = dataset.as_array()
    assert arr["price"].tolist() == [4500.0, 4400.0]
    assert arr["is_call"].tolist() == [True, False]
    assert np.allclose(dataset.prices(), [4500.0, 4400.0])
    assert dataset.prices().dtype == GAMMA_DTYPE["price"]
    assert dataset.price_span() == (4400.0, 4500.0)
    assert GammaDataset.empty().price_span() == (0.0, 0.0)


def test_price_span_includes_flip_outside_levels():
    dataset = parse("price,gamma,type,flip\n4500,1.2,Call,4600\n4400,-0.8,Put,4600\n").dataset
    assert dataset.price_span() == (4400.0, 4600.0)


def test_layout_for_name():
    assert layout_for_name("strike") is STRIKE_LAYOUT
    assert layout_for_name(" THEO ") is THEO_LAYOUT
    assert STRIKE_LAYOUT.min_columns == 4
    assert THEO_LAYOUT.min_columns == 5
    with pytest.raises(ValueError):
        layout_for_name("six-column")
