"""
Pytest Configuration and Shared Fixtures

Provides moto AWS mocking, sample payslip texts, rules and in-memory
collaborators.
"""

import os

import boto3
import pytest
from moto import mock_aws

# Set test environment before importing application modules
os.environ["PAYSLIP_DYNAMODB_TABLE_NAME"] = "TestPayslipBatches"
os.environ["PAYSLIP_S3_BUCKET_NAME"] = "test-payslip-uploads"
os.environ["PAYSLIP_EVENTBRIDGE_BUS_NAME"] = "test-payslips"
os.environ["PAYSLIP_AWS_REGION"] = "ap-southeast-1"
os.environ["AWS_DEFAULT_REGION"] = "ap-southeast-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

from payslips.shared.models.documents import PayslipDocument
from payslips.shared.models.rules import CooperativeRule, RuleKind, RulePredicate
from payslips.shared.tools import InMemoryPayslipRepository


# --- Time Fixtures ---


@pytest.fixture
def frozen_time() -> float:
    """Fixed Unix timestamp for deterministic tests."""
    return 1717200000.0  # 2024-06-01 00:00:00 UTC


# --- AWS Mocking Fixtures ---


@pytest.fixture
def aws_credentials():
    """Mock AWS credentials for moto."""
    return {
        "aws_access_key_id": "testing",
        "aws_secret_access_key": "testing",
        "region_name": "ap-southeast-1",
    }


@pytest.fixture
def mock_dynamodb(aws_credentials):
    """
    Create a mocked DynamoDB table.

    Single table with GSI1 (GSI1PK/GSI1SK) for batch membership and rule listing.
    """
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", **aws_credentials)
        table = dynamodb.create_table(
            TableName="TestPayslipBatches",
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
                {"AttributeName": "GSI1PK", "AttributeType": "S"},
                {"AttributeName": "GSI1SK", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": "GSI1",
                    "KeySchema": [
                        {"AttributeName": "GSI1PK", "KeyType": "HASH"},
                        {"AttributeName": "GSI1SK", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                }
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        table.meta.client.get_waiter("table_exists").wait(TableName="TestPayslipBatches")
        yield table


@pytest.fixture
def mock_s3(aws_credentials):
    """Create a mocked S3 bucket."""
    with mock_aws():
        s3 = boto3.client("s3", **aws_credentials)
        s3.create_bucket(
            Bucket="test-payslip-uploads",
            CreateBucketConfiguration={"LocationConstraint": "ap-southeast-1"},
        )
        yield s3


@pytest.fixture
def mock_eventbridge(aws_credentials):
    """Create a mocked EventBridge client with bus."""
    with mock_aws():
        events = boto3.client("events", **aws_credentials)
        events.create_event_bus(Name="test-payslips")
        yield events


# --- Payslip Text Fixtures ---


@pytest.fixture
def inline_payslip_text() -> str:
    """Single-line payslip as produced by PDF text extraction."""
    return (
        "Nama : Ali bin Abu No. Gaji: 12345 Bulan: 05/2024 "
        "Jumlah Potongan : 368.30 Gaji Bersih : 3,845.31 "
        "% Peratus Gaji Bersih : 91.26"
    )


@pytest.fixture
def structural_payslip_text() -> str:
    """OCR layout where labels, colons and values sit on separate lines."""
    return "\n".join([
        "KERAJAAN MALAYSIA",
        "PENYATA GAJI",
        "Jumlah Pendapatan",
        "Jumlah Potongan",
        "Gaji Bersih",
        ":",
        ":",
        ":",
        "5,200.00",
        "1,100.50",
        "4,099.50",
    ])


# --- Rule Fixtures ---


@pytest.fixture
def strict_rule() -> CooperativeRule:
    """Cooperative that caps net salary percentage at 90%."""
    return CooperativeRule(
        rule_id="koperasi-strict",
        name="Koperasi Strict",
        predicate=RulePredicate(kind=RuleKind.MAX_PERCENTAGE, threshold=90),
    )


@pytest.fixture
def lenient_rule() -> CooperativeRule:
    """Cooperative that caps net salary percentage at 95%."""
    return CooperativeRule(
        rule_id="koperasi-lenient",
        name="Koperasi Lenient",
        predicate=RulePredicate(kind=RuleKind.MAX_PERCENTAGE, threshold=95),
    )


# --- Repository Fixtures ---


@pytest.fixture
def repository() -> InMemoryPayslipRepository:
    """Empty in-memory repository."""
    return InMemoryPayslipRepository()


@pytest.fixture
def make_document(frozen_time):
    """Factory for pending text/plain payslip documents."""

    def _make(document_id: str, **overrides) -> PayslipDocument:
        data = {
            "document_id": document_id,
            "storage_path": f"{document_id}.txt",
            "mime_type": "text/plain",
            "created_at": frozen_time,
        }
        data.update(overrides)
        return PayslipDocument(**data)

    return _make
