"""
Department directory: seeding, lookup by code, ordering.
"""

import pytest

from printflow.core.exceptions import NotFoundError
from printflow.models.department import DEFAULT_DEPARTMENTS, Department, DepartmentCode
from printflow.services import department_service


class TestSeed:
    def test_seed_creates_canonical_set(self):
        created = department_service.seed_departments()
        assert created == len(DEFAULT_DEPARTMENTS)
        codes = {d.code for d in department_service.list_departments()}
        assert codes == {c.value for c in DepartmentCode}

    def test_seed_is_idempotent(self):
        department_service.seed_departments()
        assert department_service.seed_departments() == 0
        assert Department.query.count() == len(DEFAULT_DEPARTMENTS)

    def test_customer_is_the_only_virtual_department(self, departments):
        virtual = [d.code for d in department_service.list_departments() if d.is_virtual]
        assert virtual == [DepartmentCode.CUSTOMER.value]


class TestLookup:
    def test_get_by_code_accepts_enum_and_string(self, departments):
        by_enum = department_service.get_department_by_code(DepartmentCode.QUALITY)
        by_str = department_service.get_department_by_code("QUALITY")
        assert by_enum.id == by_str.id

    def test_get_department_id(self, departments):
        assert department_service.get_department_id("REPRO") == departments[DepartmentCode.REPRO].id

    def test_missing_code_raises_not_found(self):
        with pytest.raises(NotFoundError):
            department_service.get_department_by_code(DepartmentCode.REPRO)

    def test_missing_id_raises_not_found(self, departments):
        with pytest.raises(NotFoundError):
            department_service.get_department("no-such-id")

    def test_list_follows_production_order(self, departments):
        codes = [d.code for d in department_service.list_departments()]
        assert codes.index("PRE_REPRO") < codes.index("REPRO") < codes.index("QUALITY") < codes.index("COLLATION")
