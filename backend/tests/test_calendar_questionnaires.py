import json
from datetime import date, time

import pytest

from therasuite.models import Session
from therasuite.services.calendar import group_by_day, start_of_week, view_range
from therasuite.services.questionnaires import answers_to_notes, assign_question_ids, validate_answers

QUESTIONS = [
    {"id": "pain", "label": "Pain level", "type": "slider", "min": 0, "max": 10},
    {"id": "feel", "label": "How do you feel?", "type": "text"},
]


def test_week_starts_on_sunday():
    assert start_of_week(date(2024, 1, 10)) == date(2024, 1, 7)
    assert start_of_week(date(2024, 1, 7)) == date(2024, 1, 7)

def test_view_ranges():
    assert view_range("day", date(2024, 1, 10)) == (date(2024, 1, 10), date(2024, 1, 10))
    assert view_range("week", date(2024, 1, 10)) == (date(2024, 1, 7), date(2024, 1, 13))
    # 2024년 2월: 1일 목요일, 29일 목요일
    assert view_range("month", date(2024, 2, 15)) == (date(2024, 1, 28), date(2024, 3, 2))
    with pytest.raises(ValueError):
        view_range("year", date(2024, 1, 1))

def test_group_by_day_sorts_by_start_time():
    s1 = Session(id=1, date=date(2024, 1, 8), start_time=time(14), end_time=time(15))
    s2 = Session(id=2, date=date(2024, 1, 8), start_time=time(9), end_time=time(10))
    s3 = Session(id=3, date=date(2024, 2, 1), start_time=time(9), end_time=time(10))
    days = group_by_day([s1, s2, s3], date(2024, 1, 7), date(2024, 1, 9))
    assert [d for d, _ in days] == [date(2024, 1, 7), date(2024, 1, 8), date(2024, 1, 9)]
    assert [s.id for s in days[1][1]] == [2, 1]
    assert days[0][1] == []

def test_question_ids_are_generated_once():
    out = assign_question_ids([{"label": "A"}, {"id": "keep", "label": "B"}])
    assert len(out[0]["id"]) == 9
    assert out[1]["id"] == "keep"

def test_validate_answers():
    assert validate_answers(QUESTIONS, {"pain": 4, "feel": "better"}) == {"pain": 4, "feel": "better"}
    with pytest.raises(ValueError):
        validate_answers(QUESTIONS, {"pain": 11})
    with pytest.raises(ValueError):
        validate_answers(QUESTIONS, {"pain": "high"})
    with pytest.raises(ValueError):
        validate_answers(QUESTIONS, {"feel": 3})
    with pytest.raises(ValueError):
        validate_answers(QUESTIONS, {"mood": "ok"})

def test_answers_to_notes_keeps_question_ids():
    notes = answers_to_notes(QUESTIONS, {"feel": "ok", "pain": 3})
    assert json.loads(notes) == {"answers": [
        {"question_id": "pain", "label": "Pain level", "answer": 3},
        {"question_id": "feel", "label": "How do you feel?", "answer": "ok"},
    ]}

def test_answers_to_notes_with_repeated_labels():
    questions = [
        {"id": "before", "label": "Pain", "type": "slider", "min": 0, "max": 10},
        {"id": "after", "label": "Pain", "type": "slider", "min": 0, "max": 10},
    ]
    stored = json.loads(answers_to_notes(questions, {"before": 7, "after": 3}))["answers"]
    assert [(a["question_id"], a["answer"]) for a in stored] == [("before", 7), ("after", 3)]
