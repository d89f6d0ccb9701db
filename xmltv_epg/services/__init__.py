"""
Services package for XMLTV EPG Service

This package contains the guide pipeline stages and the service layer around them.
"""
from xmltv_epg.services.guide_service import GuideService
from xmltv_epg.services.provider_client import SchedulesDirectClient
from xmltv_epg.services.scheduler_service import GuideScheduler
from xmltv_epg.services.xmltv_builder import build_xmltv

__all__ = [
    'GuideService',
    'SchedulesDirectClient',
    'GuideScheduler',
    'build_xmltv',
]
