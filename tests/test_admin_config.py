"""
Tests for AdminConfigService.
"""

import pytest

from app.db.models import AdminConfig
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.services.admin_config import (
    DEFAULT_CONFIG,
    AdminConfigService,
    validate_config_value,
)
from factories import make_result


@pytest.fixture
def configs(db_session, audit) -> AdminConfigService:
    return AdminConfigService(db_session, audit)


class TestValidateValue:
    def test_credit_mode_normalized(self):
        assert validate_config_value("credit_mode", " TOTAL ") == "total"

    def test_credit_mode_rejects_other_values(self):
        with pytest.raises(ValidationError):
            validate_config_value("credit_mode", "monthly")

    def test_boolean_toggle(self):
        assert validate_config_value("user_use_own_api_key", "False") == "false"
        with pytest.raises(ValidationError):
            validate_config_value("user_use_own_api_key", "yes")

    def test_free_form_keys_pass_through(self):
        assert validate_config_value("banner_text", " Hello ") == "Hello"


class TestReads:
    async def test_get_value(self, configs, db_session):
        db_session.execute.return_value = make_result(
            scalar=AdminConfig(name="credit_mode", value="balance", added_by=1)
        )

        assert await configs.get_value("credit_mode") == "balance"

    async def test_missing_value(self, configs, db_session):
        db_session.execute.return_value = make_result(scalar=None)

        with pytest.raises(NotFoundError, match="Credit mode not found"):
            await configs.get_value("credit_mode", not_found_message="Credit mode not found")

    async def test_flag(self, configs, db_session):
        db_session.execute.return_value = make_result(
            scalar=AdminConfig(name="deduct_credit_using_own_key", value="TRUE", added_by=1)
        )

        assert await configs.get_flag("deduct_credit_using_own_key") is True


class TestMutations:
    async def test_add(self, configs, db_session, audit):
        db_session.execute.return_value = make_result(scalar=None)

        config = await configs.add("Credit_Mode", "Total", actor_id=1)

        assert config.name == "credit_mode"
        assert config.value == "total"
        assert config.added_by == 1
        audit.record.assert_awaited_once()

    async def test_add_existing(self, configs, db_session):
        db_session.execute.return_value = make_result(
            scalar=AdminConfig(name="credit_mode", value="balance", added_by=1)
        )

        with pytest.raises(ConflictError):
            await configs.add("credit_mode", "total", actor_id=1)

    async def test_add_requires_name_and_value(self, configs):
        with pytest.raises(ValidationError):
            await configs.add("", "x", actor_id=1)

    async def test_edit_by_creator(self, configs, db_session):
        updated = AdminConfig(name="credit_mode", value="total", added_by=1)
        db_session.execute.return_value = make_result(scalar=updated)

        assert (await configs.edit("credit_mode", "total", actor_id=1)).value == "total"
        db_session.commit.assert_awaited_once()

    async def test_edit_by_other_admin_is_not_found(self, configs, db_session):
        db_session.execute.return_value = make_result(scalar=None)

        with pytest.raises(NotFoundError):
            await configs.edit("credit_mode", "total", actor_id=2)
        db_session.commit.assert_not_awaited()

    async def test_delete_by_other_admin_is_not_found(self, configs, db_session):
        db_session.execute.return_value = make_result(rowcount=0)

        with pytest.raises(NotFoundError):
            await configs.delete("credit_mode", actor_id=2)

    async def test_ensure_defaults(self, configs, db_session):
        db_session.execute.return_value = make_result(scalar=None)

        created = await configs.ensure_defaults(1)

        assert created == [name for name, _ in DEFAULT_CONFIG]
        assert db_session.add.call_count == len(DEFAULT_CONFIG)
        db_session.commit.assert_awaited_once()

    async def test_reassign_owner(self, configs, db_session):
        db_session.execute.return_value = make_result(rowcount=3)

        assert await configs.reassign_owner(2, 1) == 3

        statement = db_session.execute.await_args.args[0]
        assert "UPDATE admin_config" in str(statement)
        db_session.commit.assert_not_awaited()
