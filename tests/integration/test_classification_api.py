import pytest
from fastapi.testclient import TestClient

from mailsentry.features.classification.api.router import (
    get_classification_resolver,
    get_condition_evaluator,
)
from mailsentry.features.classification.domain import (
    ClassificationRule,
    ConditionEvaluation,
    EmailCategory,
)
from mailsentry.features.classification.services import ClassificationResolver, UpstreamCallError
from mailsentry.main import app

EMAIL = {
    "id": "email-1",
    "senderEmail": "boss@co.com",
    "subject": "Board meeting",
    "mailboxId": "mbx-1",
    "tenantId": "tenant-1",
}


@pytest.fixture
def client(apply_auth_override):
    apply_auth_override(app)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def recorded(recorder, rule_store_factory):
    store = rule_store_factory(
        rules=[
            ClassificationRule(
                id="r1",
                tenant_id="tenant-1",
                category_id="c2",
                rule_type="sender",
                rule_value="boss@co.com",
                priority=20,
            )
        ],
        categories=[
            EmailCategory(id="c1", tenant_id="tenant-1", name="General", priority=10),
            EmailCategory(id="c2", tenant_id="tenant-1", name="Leadership", priority=5),
        ],
    )
    app.dependency_overrides[get_classification_resolver] = lambda: ClassificationResolver(
        store, recorder
    )
    return recorder


def test_classify_returns_recorded_classification(client, recorded):
    response = client.post("/classification/classify", json={"email": EMAIL})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Email classified successfully"
    assert body["classification"]["category_id"] == "c2"
    assert body["classification"]["rule_id"] == "r1"
    assert body["classification"]["classification_method"] == "rule"
    assert body["classification"]["confidence_score"] == pytest.approx(0.2)
    assert body["classification"]["id"] == "cls-1"
    assert len(recorded.records) == 1


def test_classify_accepts_snake_case_and_top_level_ids(client, recorded):
    email = {"id": "email-2", "sender_email": "someone@else.com", "subject": "hi"}

    response = client.post(
        "/classification/classify",
        json={"email": email, "tenant_id": "tenant-1", "mailbox_id": "mbx-1"},
    )

    assert response.status_code == 200
    classification = response.json()["classification"]
    assert classification["classification_method"] == "default"
    assert classification["category_id"] == "c1"
    assert classification["mailbox_id"] == "mbx-1"


def test_classify_without_categories_is_400(client, recorder, rule_store_factory):
    store = rule_store_factory()
    app.dependency_overrides[get_classification_resolver] = lambda: ClassificationResolver(
        store, recorder
    )

    response = client.post("/classification/classify", json={"email": EMAIL})

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "No categories configured for this mailbox",
    }
    assert recorder.records == []


@pytest.mark.parametrize("body", [None, {}, {"email": {"subject": "no id"}}])
def test_classify_rejects_missing_email(client, recorded, body):
    response = client.post("/classification/classify", json=body)

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_classify_unexpected_failure_is_500(client, rule_store_factory):
    class BrokenRecorder:
        async def record(self, classification):
            raise RuntimeError("insert failed")

    store = rule_store_factory(
        categories=[EmailCategory(id="c1", tenant_id="tenant-1", name="General")]
    )
    app.dependency_overrides[get_classification_resolver] = lambda: ClassificationResolver(
        store, BrokenRecorder()
    )

    response = client.post("/classification/classify", json={"email": EMAIL})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "insert failed"}


def test_classify_requires_bearer_token():
    app.dependency_overrides.clear()

    response = TestClient(app).post("/classification/classify", json={"email": EMAIL})

    assert response.status_code in (401, 403)


def test_evaluate_condition(client, evaluator_factory):
    evaluator = evaluator_factory(
        {"mentions the board": ConditionEvaluation(True, 0.88, "subject says board")}
    )
    app.dependency_overrides[get_condition_evaluator] = lambda: evaluator

    response = client.post(
        "/classification/evaluate-condition",
        json={"condition": "mentions the board", "email": EMAIL},
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "result": {"meetsCondition": True, "confidence": 0.88, "reasoning": "subject says board"},
    }


@pytest.mark.parametrize(
    "body", [{"email": EMAIL}, {"condition": "x"}, {"condition": "", "email": EMAIL}]
)
def test_evaluate_condition_missing_fields(client, evaluator_factory, body):
    app.dependency_overrides[get_condition_evaluator] = lambda: evaluator_factory()

    response = client.post("/classification/evaluate-condition", json=body)

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Missing required fields: condition and email",
    }


def test_evaluate_condition_upstream_failure_is_500(client, evaluator_factory):
    evaluator = evaluator_factory(error=UpstreamCallError("AI condition evaluation unavailable"))
    app.dependency_overrides[get_condition_evaluator] = lambda: evaluator

    response = client.post(
        "/classification/evaluate-condition", json={"condition": "x", "email": EMAIL}
    )

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "AI condition evaluation unavailable"}
