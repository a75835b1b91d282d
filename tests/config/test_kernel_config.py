"""Tests for KernelConfig loading, validation and kernel wiring."""

from decimal import Decimal
from uuid import uuid4

import pytest
import yaml

from pharmacy_kernel.bootstrap import build_kernel
from pharmacy_kernel.config import (
    KernelConfig,
    RetryPolicy,
    config_from_dict,
    load_config,
)
from pharmacy_kernel.domain.clock import DeterministicClock
from pharmacy_kernel.domain.dtos import ActorContext, OrderLineRequest
from pharmacy_kernel.domain.identifiers import SequentialReferenceGenerator
from pharmacy_kernel.models import Customer, Medicine


class TestDefaults:

    def test_defaults_are_valid(self):
        config = KernelConfig()
        assert config.isolation_level == "READ COMMITTED"
        assert config.retry.max_attempts == 3
        assert config.default_location == "MAIN_STORAGE"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"database_url": ""},
            {"isolation_level": "READ UNCOMMITTED"},
            {"log_level": "CHATTY"},
            {"lock_timeout_ms": 0},
            {"max_overflow": -1},
            {"default_reorder_point": -1},
            {"order_number_prefix": ""},
        ],
    )
    def test_invalid_settings_rejected(self, kwargs):
        with pytest.raises(ValueError):
            KernelConfig(**kwargs)

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_attempts": 0}, {"base_delay_s": -0.1}, {"jitter": 1.5}],
    )
    def test_invalid_retry_policy_rejected(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestYaml:

    def test_load_yaml_file(self, tmp_path):
        path = tmp_path / "pharmacy.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "database_url": "postgresql://pharmacy@localhost/pharmacy",
                    "isolation_level": "SERIALIZABLE",
                    "retry": {"max_attempts": 5, "base_delay_s": 0.2},
                }
            )
        )

        config = load_config(path, environ={})

        assert config.database_url == "postgresql://pharmacy@localhost/pharmacy"
        assert config.isolation_level == "SERIALIZABLE"
        assert config.retry == RetryPolicy(max_attempts=5, base_delay_s=0.2)

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown config keys"):
            config_from_dict({"databse_url": "sqlite://"})

    def test_unknown_retry_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown retry keys"):
            config_from_dict({"retry": {"attempts": 2}})

    def test_non_mapping_document_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_config(path, environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml", environ={})


class TestEnvironmentOverrides:

    def test_overrides_apply_on_top_of_file(self, tmp_path):
        path = tmp_path / "pharmacy.yaml"
        path.write_text("database_url: sqlite:///from_file.db\nlog_level: INFO\n")

        config = load_config(
            path,
            environ={
                "DATABASE_URL": "sqlite:///from_env.db",
                "PHARMACY_LOG_LEVEL": "DEBUG",
                "PHARMACY_DB_ECHO": "true",
                "PHARMACY_LOCK_TIMEOUT_MS": "250",
                "PHARMACY_MAX_ATTEMPTS": "7",
            },
        )

        assert config.database_url == "sqlite:///from_env.db"
        assert config.log_level == "DEBUG"
        assert config.echo is True
        assert config.lock_timeout_ms == 250
        assert config.retry.max_attempts == 7

    def test_empty_environment_keeps_defaults(self):
        assert load_config(environ={}) == KernelConfig()

    def test_invalid_override_rejected(self):
        with pytest.raises(ValueError):
            load_config(environ={"PHARMACY_ISOLATION_LEVEL": "CHAOS"})

    @pytest.mark.parametrize(
        "var, raw",
        [
            ("PHARMACY_MAX_ATTEMPTS", "three"),
            ("PHARMACY_LOCK_TIMEOUT_MS", "5s"),
        ],
    )
    def test_unparseable_number_names_the_variable(self, var, raw):
        with pytest.raises(ValueError, match=var):
            load_config(environ={var: raw})

    def test_zero_attempts_rejected_by_retry_policy(self):
        with pytest.raises(ValueError, match="max_attempts"):
            load_config(environ={"PHARMACY_MAX_ATTEMPTS": "0"})


class TestBuildKernel:

    def test_wired_kernel_places_an_order(self, db_engine, session_factory, kernel_config, shipping):
        clock = DeterministicClock()
        kernel = build_kernel(
            kernel_config,
            clock=clock,
            references=SequentialReferenceGenerator(order_prefix="RX"),
            engine=db_engine,
            sleep=lambda _: None,
        )
        actor = ActorContext(actor_id=uuid4())

        with session_factory() as s:
            customer = Customer(customer_code="C-1", name="Ann", created_by_id=actor.actor_id)
            medicine = Medicine(
                sku="SKU-1", name="Ibuprofen", unit_price=Decimal("4.00"),
                created_by_id=actor.actor_id,
            )
            s.add_all([customer, medicine])
            s.commit()

        kernel.stock.open_inventory_record(medicine.id, 10, actor)
        order = kernel.orders.create_order(
            customer.id,
            [OrderLineRequest(medicine.id, 2, Decimal("4.00"))],
            "CASH",
            shipping,
            actor,
        )

        assert order.order_number == "RX-000001"
        assert kernel.orders.get_ledger_status(medicine.id).quantity == 8
        assert kernel.coordinator.retry_policy == kernel_config.retry
        assert kernel.clock is clock
