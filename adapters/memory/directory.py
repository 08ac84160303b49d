"""Fixed patient population for a scheduler."""

from collections.abc import Iterable


class StaticPatientDirectory:
    def __init__(self, patient_ids: Iterable[str] = ()) -> None:
        self._patient_ids: list[str] = list(dict.fromkeys(patient_ids))
        self.fail_with: Exception | None = None

    def add(self, patient_id: str) -> None:
        if patient_id not in self._patient_ids:
            self._patient_ids.append(patient_id)

    async def list_patient_ids(self) -> list[str]:
        if self.fail_with is not None:
            raise self.fail_with
        return list(self._patient_ids)
