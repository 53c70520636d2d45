import json
import uuid
from typing import Any, Dict, List


def assign_question_ids(questions: List[dict]) -> List[dict]:
    out = []
    for q in questions:
        q = dict(q)
        if not q.get("id"):
            q["id"] = uuid.uuid4().hex[:9]
        out.append(q)
    return out

def validate_answers(questions: List[dict], answers: Dict[str, Any]) -> Dict[str, Any]:
    """
    설문 응답 검증.
    - 모르는 질문 id 는 거부
    - slider 는 [min, max] 범위의 숫자
    - text 는 문자열
    검증된 응답을 질문 순서대로 돌려준다.
    """
    by_id = {q["id"]: q for q in questions}
    unknown = [k for k in answers if k not in by_id]
    if unknown:
        raise ValueError(f"unknown question ids: {', '.join(sorted(unknown))}")

    cleaned = {}
    for q in questions:
        if q["id"] not in answers:
            continue
        value = answers[q["id"]]
        if q.get("type") == "slider":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"'{q['label']}' expects a number")
            if value < q["min"] or value > q["max"]:
                raise ValueError(f"'{q['label']}' must be between {q['min']} and {q['max']}")
        elif not isinstance(value, str):
            raise ValueError(f"'{q['label']}' expects text")
        cleaned[q["id"]] = value
    return cleaned

def answers_to_notes(questions: List[dict], answers: Dict[str, Any]) -> str:
    """
    세션 health_notes 에 저장할 JSON 문자열.
    {"answers": [{"question_id", "label", "answer"}]} 형태, 질문 순서대로.
    같은 label 의 질문이 있어도 id 로 구분된다.
    """
    entries = [
        {"question_id": q["id"], "label": q.get("label"), "answer": answers[q["id"]]}
        for q in questions
        if q["id"] in answers
    ]
    return json.dumps({"answers": entries}, ensure_ascii=False)
