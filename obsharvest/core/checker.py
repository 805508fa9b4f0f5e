"""

.. currentmodule:: obsharvest.core.checker

:platform: Unix, Mac
:synopsis: Unit compatibility of a file with target services

The units a file declares are checked before the file is imported into a
service: every unit has to parse (a warning otherwise) and every unit of a
field the service already holds in another unit has to convert into it (an
error otherwise). Nothing is written to the services.

.. contents:: Contents
    :local:
    :backlinks: top

"""
import os
from typing import List, Optional

from obsharvest.core import monitor
from obsharvest.core.extractor import ExtractionError
from obsharvest.core.schema.report import CompatibilityError, CompatibilityReport
from obsharvest.core.service import SensorService
from obsharvest.core.store import NotObservationProviderError, ProviderLookup, StoreException
from obsharvest.core.units import UnitHandler

logger = monitor.get_logger(__name__)


class CompatibilityException(Exception):
    """The check could not be run"""
    pass


class CompatibilityChecker:
    """
    Check the units of an integrated file against target services
    """

    def __init__(self, provider_lookup: ProviderLookup, unit_handler: Optional[UnitHandler] = None):
        """
        :param provider_lookup: resolves the provider of a data identifier
        :param unit_handler: parses and compares units
        """
        self.provider_lookup = provider_lookup
        self.units = unit_handler or UnitHandler()

    @monitor.ctx_harvest
    def check(self, data_id: int, services: List[SensorService], file_name: Optional[str] = None) \
            -> CompatibilityReport:
        """
        Check one integrated file.

        :param data_id: the data identifier of the file
        :param services: the services that are to receive the file
        :param file_name: the name in the report, defaults to the file base name
        :return: the report
        :raises NotObservationProviderError: the data is not served by an observation provider
        :raises CompatibilityException: the provider has no template, or a service has
            more than one template for a procedure
        """
        provider = self.provider_lookup.get_provider_for_data(data_id)
        if not provider.is_observation_provider():
            raise NotObservationProviderError(f"Data {data_id} ({provider.path}) is not served by an "
                                              f"observation provider")
        file_name = file_name or os.path.basename(provider.path)
        monitor.set_ctx_harvest_where(file_name)

        templates = provider.get_templates()
        if not templates:
            raise CompatibilityException("The data provider did not produce any observations.")

        warnings: List[str] = []
        errors: List[CompatibilityError] = []
        for template in templates:
            sensor_id = template.procedure
            file_fields = {}
            for field in template.result_structure.fields:
                if field.uom is not None and field.uom not in warnings and not self.units.is_parseable(field.uom):
                    logger.warning(f"Unparseable unit of measure '{field.uom}' for property {field.name} "
                                   f"of sensor {sensor_id}")
                    warnings.append(field.uom)
                file_fields[field.name] = field

            for service in services:
                service_templates = service.get_templates(sensor_id)
                if len(service_templates) > 1:
                    raise CompatibilityException(
                        f"Unexpected multiple observation template for procedure: {sensor_id} "
                        f"in service {service.identifier}")
                if not service_templates:
                    # the sensor is new to the service
                    continue

                pairs = set()
                for service_field in service_templates[0].result_structure.fields:
                    field = file_fields.get(service_field.name)
                    if field is None or field.uom is None or service_field.uom is None \
                            or field.uom == service_field.uom:
                        continue
                    message = f"{field.uom} => {service_field.uom} for property: {field.name}"
                    if message not in pairs and not self.units.is_convertible(field.uom, service_field.uom):
                        pairs.add(message)
                        logger.error(f"Sensor {sensor_id}, service {service.identifier}: {message}")
                        errors.append(CompatibilityError(procedure_id=sensor_id, service=service.identifier,
                                                         message=message))

        report = CompatibilityReport(file_name=file_name, warnings=warnings, errors=errors)
        logger.info(f"Compatibility of {file_name}: {'OK' if report.valid else 'KO'}")
        return report

    def validate(self, data_id: int, services: List[SensorService], file_name: Optional[str] = None) \
            -> CompatibilityReport:
        """
        Check one integrated file. A check that can not be run gives an
        invalid report naming the failure instead of an exception.
        """
        try:
            return self.check(data_id, services, file_name=file_name)
        except (CompatibilityException, StoreException, ExtractionError) as e:
            logger.error(f"Compatibility check of data {data_id} failed: {e}")
            return CompatibilityReport(file_name=file_name, failure=str(e))
