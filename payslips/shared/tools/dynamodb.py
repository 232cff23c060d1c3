"""
DynamoDB Tools

Single-table persistence for payslip documents, batches and cooperative
rules. Creates are idempotent and updates use optimistic locking on the
item version.
"""

from typing import Any

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError
import structlog

from payslips.shared.config import get_settings
from payslips.shared.exceptions import (
    BatchNotFoundError,
    ConditionalWriteError,
    DocumentNotFoundError,
    DynamoDBError,
)
from payslips.shared.models.batches import BatchOperation
from payslips.shared.models.documents import PayslipDocument
from payslips.shared.models.rules import CooperativeRule
from payslips.shared.state_machine import DocumentStatus

log = structlog.get_logger()

GSI1_NAME = "GSI1"


def _get_table():
    """Get DynamoDB table resource."""
    settings = get_settings()
    dynamodb = boto3.resource("dynamodb", **settings.dynamodb_config)
    return dynamodb.Table(settings.dynamodb_table_name)


class DynamoPayslipRepository:
    """
    PayslipRepository backed by one DynamoDB table.

    Key layout:
        PAYSLIP#<document_id> / METADATA
        BATCH#<batch_id>      / METADATA
        KOPERASI#<rule_id>    / RULE
    GSI1 lists documents per batch (BATCH#<batch_id>) and all rules (KOPERASI).
    """

    def __init__(self, table: Any = None) -> None:
        self._table = table if table is not None else _get_table()

    @property
    def table_name(self) -> str:
        return self._table.name

    # --- Generic helpers ---

    def _get_item(self, pk: str, sk: str) -> dict[str, Any] | None:
        try:
            response = self._table.get_item(
                Key={"PK": pk, "SK": sk},
                ConsistentRead=True,
            )
        except ClientError as e:
            log.error("dynamodb_get_failed", pk=pk, error=str(e))
            raise DynamoDBError(
                operation="get",
                table_name=self.table_name,
                error_message=str(e),
            ) from e
        return response.get("Item")

    def _put_new(self, item: dict[str, Any]) -> bool:
        """Conditional create. Returns False when the item already exists."""
        try:
            self._table.put_item(
                Item=item,
                ConditionExpression="attribute_not_exists(PK)",
            )
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                log.info("dynamodb_item_already_exists", pk=item["PK"])
                return False
            log.error("dynamodb_put_failed", pk=item["PK"], error=str(e))
            raise DynamoDBError(
                operation="put",
                table_name=self.table_name,
                error_message=str(e),
            ) from e

    def _put_versioned(self, item: dict[str, Any], current_version: int) -> None:
        """Replace an item only if its stored version is unchanged."""
        try:
            self._table.put_item(
                Item=item,
                ConditionExpression="attribute_exists(PK) AND #version = :current_version",
                ExpressionAttributeNames={"#version": "version"},
                ExpressionAttributeValues={":current_version": current_version},
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                log.warning(
                    "conditional_write_failed",
                    pk=item["PK"],
                    expected_version=current_version,
                )
                raise ConditionalWriteError(
                    table_name=self.table_name,
                    expected_version=current_version,
                ) from e
            log.error("dynamodb_update_failed", pk=item["PK"], error=str(e))
            raise DynamoDBError(
                operation="update",
                table_name=self.table_name,
                error_message=str(e),
            ) from e

    def _query_gsi1(self, gsi1pk: str, **extra: Any) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        params: dict[str, Any] = {
            "IndexName": GSI1_NAME,
            "KeyConditionExpression": Key("GSI1PK").eq(gsi1pk),
            **extra,
        }
        try:
            while True:
                response = self._table.query(**params)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                params["ExclusiveStartKey"] = last_key
        except ClientError as e:
            log.error("dynamodb_query_failed", gsi1pk=gsi1pk, error=str(e))
            raise DynamoDBError(
                operation="query",
                table_name=self.table_name,
                error_message=str(e),
            ) from e
        return items

    # --- Documents ---

    def create_document(self, document: PayslipDocument) -> PayslipDocument:
        """
        Create a payslip record.

        This is idempotent - if the record already exists, it returns the existing record.
        """
        log.info(
            "creating_payslip_record",
            document_id=document.document_id,
            batch_id=document.batch_id,
        )
        if self._put_new(document.to_dynamodb()):
            return document
        return self.get_document(document.document_id)

    def get_document(self, document_id: str) -> PayslipDocument:
        item = self._get_item(f"PAYSLIP#{document_id}", "METADATA")
        if not item:
            raise DocumentNotFoundError(document_id)
        return PayslipDocument.from_dynamodb(item)

    def update_document(self, document: PayslipDocument) -> PayslipDocument:
        updated = document.model_copy(update={"version": document.version + 1})
        self._put_versioned(updated.to_dynamodb(), current_version=document.version)
        log.debug(
            "payslip_record_updated",
            document_id=document.document_id,
            status=updated.status.value,
            new_version=updated.version,
        )
        return updated

    def list_batch_documents(
        self,
        batch_id: str,
        status: DocumentStatus | None = None,
    ) -> list[PayslipDocument]:
        extra: dict[str, Any] = {}
        if status is not None:
            extra["FilterExpression"] = Attr("status").eq(status.value)
        items = self._query_gsi1(f"BATCH#{batch_id}", **extra)
        documents = [PayslipDocument.from_dynamodb(item) for item in items]
        return sorted(documents, key=lambda d: d.document_id)

    # --- Batches ---

    def create_batch(self, batch: BatchOperation) -> BatchOperation:
        log.info("creating_batch_record", batch_id=batch.batch_id, total_files=batch.total_files)
        if self._put_new(batch.to_dynamodb()):
            return batch
        return self.get_batch(batch.batch_id)

    def get_batch(self, batch_id: str) -> BatchOperation:
        item = self._get_item(f"BATCH#{batch_id}", "METADATA")
        if not item:
            raise BatchNotFoundError(batch_id)
        return BatchOperation.from_dynamodb(item)

    def update_batch(self, batch: BatchOperation) -> BatchOperation:
        updated = batch.model_copy(update={"version": batch.version + 1})
        self._put_versioned(updated.to_dynamodb(), current_version=batch.version)
        log.debug(
            "batch_record_updated",
            batch_id=batch.batch_id,
            status=updated.status.value,
            processed_files=updated.processed_files,
        )
        return updated

    # --- Rules ---

    def save_rule(self, rule: CooperativeRule) -> CooperativeRule:
        try:
            self._table.put_item(Item=rule.to_dynamodb())
        except ClientError as e:
            log.error("dynamodb_put_failed", rule_id=rule.rule_id, error=str(e))
            raise DynamoDBError(
                operation="put",
                table_name=self.table_name,
                error_message=str(e),
            ) from e
        return rule

    def list_rules(self, *, active_only: bool = True) -> list[CooperativeRule]:
        rules = [CooperativeRule.from_dynamodb(item) for item in self._query_gsi1("KOPERASI")]
        if active_only:
            rules = [r for r in rules if r.is_active]
        return sorted(rules, key=lambda r: r.name)
