# DynDNSd
# (C) 2024-2025 Luflosi (dyndnsd@luflosi.de)
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, version 3.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

from datetime import datetime, timezone
from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

startup_time = datetime.now(timezone.utc)

# Prometheus metrics
ddns_updates_total = Counter(
    'dyndnsd_updates_total',
    'Total number of DDNS update requests',
    ['status']
)

zone_updates_total = Counter(
    'dyndnsd_zone_updates_total',
    'Total number of records sent to the update program',
    ['record_type']
)

update_program_duration = Histogram(
    'dyndnsd_update_program_duration_seconds',
    'Time spent running the update program'
)

uptime_seconds = Gauge(
    'dyndnsd_uptime_seconds',
    'Uptime in seconds'
)

last_update_timestamp = Gauge(
    'dyndnsd_last_update_timestamp',
    'Timestamp of last successful update'
)


def update_uptime_metrics():
    uptime_seconds.set((datetime.now(timezone.utc) - startup_time).total_seconds())


async def metrics_endpoint():
    """Prometheus metrics endpoint"""
    update_uptime_metrics()
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
