from __future__ import annotations

import logging
from typing import List

from .models import LOCAL, JobDefinition, Volume

logger = logging.getLogger(__name__)


def resolve_instance_id(job: JobDefinition, provider) -> str:
    """Instance id filter for the job; detects the local host id when asked to."""
    selector = job.settings.instance
    if selector.kind != LOCAL:
        return selector.instance_id
    logger.debug("Trying to detect the instance ID of the local instance ...")
    instance_id = provider.detect_local_instance_id()
    logger.debug("Have detected the instance ID of the local instance as %s", instance_id)
    return instance_id


def locate_volumes(job: JobDefinition, provider) -> List[Volume]:
    """
    Volumes to back up for a job, in provider order: instances as enumerated,
    then each instance's volumes as enumerated. Matching nothing is allowed.
    """
    s = job.settings
    instance_id = resolve_instance_id(job, provider)
    insttag = s.instance_tag
    voltag = s.volume_tag

    logger.debug(
        'Listing instances based on instance_id="%s" and instance_tag="%s" ...',
        instance_id, insttag or "",
    )
    instances = provider.find_instances(instance_id, insttag)
    if not instances:
        logger.warning('Job "%s": have not found any instance matching the conditions', job.name)

    results: List[Volume] = []
    for inst in instances:
        logger.debug('Found instance: instanceId="%s" instanceName="%s" ownerId="%s"', inst.id, inst.name, inst.owner)
        for vol in provider.find_volumes(inst.id, voltag):
            logger.debug('Found volume: volumeId="%s" volumeName="%s" instanceId="%s"', vol.id, vol.name, inst.id)
            results.append(vol)
    if not results:
        logger.warning('Job "%s": have not found any volume matching the conditions', job.name)
    return results
