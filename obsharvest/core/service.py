"""

.. currentmodule:: obsharvest.core.service

:platform: Unix, Mac
:synopsis: Target sensor services

A sensor service publishes the sensors and observations of an observation
backend. Services configured against the same host, database and schema
share one backend.

.. contents:: Contents
    :local:
    :backlinks: top

"""
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from obsharvest.core import monitor
from obsharvest.core.models import DataRecord, ExtractionResult, Field, Observation, Phenomenon, ProcedureTree, \
    SamplingFeature

logger = monitor.get_logger(__name__)


@dataclass(frozen=True)
class BackingStoreIdentity:
    """
    The physical store behind a service. Equal identities are the same store.

    >>> BackingStoreIdentity("localhost", "om", "public") == BackingStoreIdentity("localhost", "om", "public")
    True
    """
    host: str
    database: str
    schema: str = ""

    def __str__(self):
        return f"{self.host}/{self.database}/{self.schema}"


class ObservationBackend:
    """An in memory observation store"""

    def __init__(self, identity: BackingStoreIdentity):
        self.identity = identity
        self.procedures: Dict[str, ProcedureTree] = {}
        self.phenomena: List[Phenomenon] = []
        self.features: List[SamplingFeature] = []
        self.observations: List[Observation] = []
        self.templates: Dict[str, List[Observation]] = {}

    def write_procedure(self, tree: ProcedureTree):
        """Add a procedure or widen the bound and fields of a known one"""
        known = self.procedures.get(tree.id)
        if known is None:
            bound = tree.spatial_bound.copy() if tree.spatial_bound is not None else None
            self.procedures[tree.id] = replace(tree, measured_fields=list(tree.measured_fields),
                                               spatial_bound=bound)
            return
        for name in tree.measured_fields:
            if name not in known.measured_fields:
                known.measured_fields.append(name)
        if known.spatial_bound is None:
            known.spatial_bound = tree.spatial_bound.copy() if tree.spatial_bound is not None else None
        else:
            known.spatial_bound.merge(tree.spatial_bound)

    def _update_template(self, observation: Observation):
        templates = self.templates.setdefault(observation.procedure, [])
        if not templates:
            templates.append(observation.template())
            return
        # new fields are added to the known template, known fields keep their unit
        template = templates[0]
        known = {f.name for f in template.phenomenon.fields}
        added = [f for f in observation.phenomenon.fields if f.name not in known]
        if added:
            fields: List[Field] = template.phenomenon.fields + added
            record = DataRecord(kind=template.result_structure.kind,
                                fields=template.result_structure.fields + added)
            templates[0] = replace(template, phenomenon=Phenomenon.from_fields(fields), result_structure=record)

    def import_result(self, result: ExtractionResult) -> int:
        """
        Insert the observations of a result with their phenomena and features

        :return: the number of observations inserted
        """
        for phenomenon in [result.phenomenon] + [o.phenomenon for o in result.observations]:
            if phenomenon is not None and all(p.id != phenomenon.id for p in self.phenomena):
                self.phenomena.append(phenomenon)
        for feature in result.features_of_interest:
            if all(f.id != feature.id for f in self.features):
                self.features.append(feature)
        for observation in result.observations:
            self.observations.append(observation)
            self._update_template(observation)
        return len(result.observations)

    def remove_procedure(self, procedure_id: str) -> int:
        """
        Remove a procedure with its observations and templates

        :return: the number of observations removed
        """
        self.procedures.pop(procedure_id, None)
        self.templates.pop(procedure_id, None)
        kept = [o for o in self.observations if o.procedure != procedure_id]
        removed = len(self.observations) - len(kept)
        self.observations = kept
        return removed


class BackendDirectory:
    """One backend per backing store identity"""

    def __init__(self):
        self._backends: Dict[BackingStoreIdentity, ObservationBackend] = {}

    def get(self, identity: BackingStoreIdentity) -> ObservationBackend:
        if identity not in self._backends:
            self._backends[identity] = ObservationBackend(identity)
        return self._backends[identity]


class SensorService:
    """
    A target service receiving sensors and observations
    """

    def __init__(self, identifier: str, store_identity: BackingStoreIdentity,
                 directory: Optional[BackendDirectory] = None, type: str = "sos"):
        """
        :param identifier: the service identifier
        :param store_identity: the physical store of the service
        :param directory: the backends shared between services
        :param type: the service type
        """
        self.identifier = identifier
        self.store_identity = store_identity
        self.type = type
        self.backend = (directory or BackendDirectory()).get(store_identity)
        self.restart_count = 0

    def write_procedure(self, tree: ProcedureTree):
        self.backend.write_procedure(tree)

    def import_observations(self, result: ExtractionResult) -> int:
        inserted = self.backend.import_result(result)
        logger.info(f"Imported {inserted} observation(s) into service {self.identifier}")
        return inserted

    def get_phenomena(self) -> List[Phenomenon]:
        return list(self.backend.phenomena)

    def get_features(self) -> List[SamplingFeature]:
        return list(self.backend.features)

    def get_templates(self, procedure_id: str) -> List[Observation]:
        """The structure only observations known for a procedure"""
        return list(self.backend.templates.get(procedure_id, []))

    def get_procedure(self, procedure_id: str) -> Optional[ProcedureTree]:
        return self.backend.procedures.get(procedure_id)

    def restart(self):
        """Reload the service so it publishes the new sensors"""
        self.restart_count += 1
        logger.info(f"Restarted service {self.identifier}")

    def __repr__(self):
        return '<SensorService %r %s>' % (self.identifier, self.store_identity)
