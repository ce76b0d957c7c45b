from survey_hub.core.schema_parser import (
    DEFAULT_BLOCK,
    QuestionDefinition,
    QuestionKind,
    format_display_id,
    normalize_question_text,
    parse_schema_csv,
    parse_schema_csv_detailed,
    parse_schema_rows,
    split_list,
    strip_html,
)

QUALTRICS_SCHEMA = (
    "Q#,SourceLabel,Type,QText,Choices,Rows,Columns,BlockName\n"
    "Q1,Intro,Single,<b>Favourite</b>   colour?,Red; Green; Blue,,,Intro\n"
    "Q2,Intro,Multi,Which apply?,A; B; C,,,Intro\n"
    "Q2_4_TEXT,Intro,Verbatim,Which apply? - Other - Text,,,,Intro\n"
    "Q3,Grid,Matrix,Rate us,,Food; Music,Low; High,Grid\n"
    "Q4,Grid,Matrix,How satisfied?,,,Bad; OK; Good,Grid\n"
    "Q5,Geo,Verbatim,zip,,,,Geo\n"
)

DIGIVEY_SCHEMA = (
    "QuestionID,Question Text,Question Type,Answer Choices,Block\n"
    "Q1,Age,Single,Under 18;18-34;35+,Demo\n"
    ",Missing id,Single,A;B,Demo\n"
    "Q9,Comments,,,\n"
)


def test_parse_qualtrics_schema():
    questions = parse_schema_csv(QUALTRICS_SCHEMA)
    assert [q.id for q in questions] == ["Q1", "Q2", "Q3", "Q4", "Q5"]

    q1 = questions[0]
    assert q1.text == "Favourite colour?"
    assert q1.type == "Single"
    assert q1.choices == ("Red", "Green", "Blue")
    assert q1.block == "Intro"

    q3 = questions[2]
    assert q3.rows == ("Food", "Music")
    assert q3.columns == ("Low", "High")
    assert q3.kind == QuestionKind.MATRIX


def test_single_row_matrix_is_promoted_to_single():
    q4 = parse_schema_csv(QUALTRICS_SCHEMA)[3]
    assert q4.type == "Single"
    assert q4.choices == ("Bad", "OK", "Good")
    assert q4.columns == ()
    assert q4.kind == QuestionKind.SINGLE


def test_text_companion_rows_are_skipped():
    result = parse_schema_csv_detailed(QUALTRICS_SCHEMA)
    assert "Q2_4_TEXT" not in [q.id for q in result.questions]
    assert result.skipped_rows == 1


def test_geo_prompt_is_canonicalized():
    assert parse_schema_csv(QUALTRICS_SCHEMA)[4].text == "Zip Code"
    assert normalize_question_text("  Postal ") == "Postal Code"


def test_parse_digivey_schema_with_defaults():
    result = parse_schema_csv_detailed(DIGIVEY_SCHEMA)
    assert [q.id for q in result.questions] == ["Q1", "Q9"]
    assert result.skipped_rows == 1

    q1, q9 = result.questions
    assert q1.choices == ("Under 18", "18-34", "35+")
    assert q1.block == "Demo"
    assert q9.type == "Verbatim"
    assert q9.block == DEFAULT_BLOCK
    assert q9.kind == QuestionKind.VERBATIM


def test_duplicate_ids_keep_first():
    result = parse_schema_rows([
        {"Q#": "Q1", "QText": "First", "Type": "Single", "Choices": "A;B"},
        {"Q#": "Q1", "QText": "Second", "Type": "Single", "Choices": "C;D"},
    ])
    assert len(result.questions) == 1
    assert result.questions[0].text == "First"
    assert result.skipped_rows == 1


def test_unreadable_schema_yields_empty_list():
    assert parse_schema_csv("") == []


def test_kind_derivation():
    def kind(qtype, text="Question"):
        return QuestionDefinition(id="Q1", text=text, type=qtype).kind

    assert kind("Single") == QuestionKind.SINGLE
    assert kind("Multi") == QuestionKind.MULTI
    assert kind("Matrix") == QuestionKind.MATRIX
    assert kind("Likert") == QuestionKind.MATRIX
    assert kind("Multi", "Please rank these") == QuestionKind.RANKING
    assert kind("Matrix", "Rank the sessions") == QuestionKind.RANKING
    assert kind("Info") == QuestionKind.INFO
    assert kind("Verbatim") == QuestionKind.VERBATIM
    assert kind("Slider") == QuestionKind.VERBATIM


def test_options_use_columns_for_grids():
    grid = QuestionDefinition(id="Q3", text="t", type="Matrix", rows=("a",), columns=("Low", "High"))
    single = QuestionDefinition(id="Q1", text="t", type="Single", choices=("Yes", "No"))
    assert grid.options == ("Low", "High")
    assert single.options == ("Yes", "No")
    assert grid.is_multi_valued and not single.is_multi_valued


def test_text_helpers():
    assert strip_html("<p>Hello <br/>  world</p>") == "Hello world"
    assert strip_html(None) == ""
    assert split_list(" A; B;; C ") == ("A", "B", "C")
    assert split_list(None) == ()


def test_format_display_id():
    assert format_display_id("Q7_10_TEXT") == "Q7 Other"
    assert format_display_id("Q7_TEXT") == "Q7 Other"
    assert format_display_id("Q7") == "Q7"


def test_unterminated_quote_keeps_questions_before_it():
    text = 'Q#,QText,Type,Choices\nQ1,Colour,Single,Red;Green\nQ2,"Broken,Single,A;B\n'
    assert [q.id for q in parse_schema_csv(text)] == ["Q1"]
