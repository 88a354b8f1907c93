"""Region -> district catalogue and the session's region directory.

DISTRICTS_BY_REGION holds the districts the console offers for each region.
Regions outside the catalogue impose no district constraint.

RegionDirectory resolves region names to the identifiers the pricing and
package endpoints expect; it loads the region list once per session.
"""

from __future__ import annotations

import asyncio

import structlog

from src.dealdesk.backend.adapter import OperationsBackend
from src.dealdesk.backend.errors import BackendError
from src.dealdesk.wizard.generation import Generation
from src.dealdesk.wizard.schemas import RegionRecord

logger = structlog.get_logger(__name__)

DISTRICTS_BY_REGION: dict[str, list[str]] = {
    "Kerala": [
        "Alappuzha", "Ernakulam", "Idukki", "Kannur", "Kasaragod",
        "Kollam", "Kottayam", "Kozhikode", "Malappuram", "Palakkad",
        "Pathanamthitta", "Thiruvananthapuram", "Thrissur", "Wayanad",
    ],
    "Tamil Nadu": [
        "Ariyalur", "Chengalpattu", "Chennai", "Coimbatore", "Cuddalore",
        "Dharmapuri", "Dindigul", "Erode", "Kallakurichi", "Kanchipuram",
        "Kanyakumari", "Karur", "Krishnagiri", "Madurai", "Mayiladuthurai",
        "Nagapattinam", "Namakkal", "Nilgiris", "Perambalur", "Pudukkottai",
        "Ramanathapuram", "Ranipet", "Salem", "Sivaganga", "Tenkasi",
        "Thanjavur", "Theni", "Thoothukudi", "Tiruchirappalli", "Tirunelveli",
        "Tirupathur", "Tiruppur", "Tiruvallur", "Tiruvannamalai", "Tiruvarur",
        "Vellore", "Viluppuram", "Virudhunagar",
    ],
    "Karnataka": [
        "Bagalkot", "Ballari", "Belagavi", "Bengaluru Rural", "Bengaluru Urban",
        "Bidar", "Chamarajanagar", "Chikkaballapur", "Chikkamagaluru", "Chitradurga",
        "Dakshina Kannada", "Davanagere", "Dharwad", "Gadag", "Hassan",
        "Haveri", "Kalaburagi", "Kodagu", "Kolar", "Koppal",
        "Mandya", "Mysuru", "Raichur", "Ramanagara", "Shivamogga",
        "Tumakuru", "Udupi", "Uttara Kannada", "Vijayapura", "Yadgir",
    ],
    "Maharashtra": [
        "Ahmednagar", "Akola", "Amravati", "Aurangabad", "Beed",
        "Bhandara", "Buldhana", "Chandrapur", "Dhule", "Gadchiroli",
        "Gondia", "Hingoli", "Jalgaon", "Jalna", "Kolhapur",
        "Latur", "Mumbai City", "Mumbai Suburban", "Nagpur", "Nanded",
        "Nandurbar", "Nashik", "Osmanabad", "Palghar", "Parbhani",
        "Pune", "Raigad", "Ratnagiri", "Sangli", "Satara",
        "Sindhudurg", "Solapur", "Thane", "Wardha", "Washim", "Yavatmal",
    ],
    "Delhi": [
        "Central Delhi", "East Delhi", "New Delhi", "North Delhi", "North East Delhi",
        "North West Delhi", "Shahdara", "South Delhi", "South East Delhi",
        "South West Delhi", "West Delhi",
    ],
}


def district_options(region: str) -> list[str]:
    """Districts selectable for a region (empty when unknown or unset)."""
    return list(DISTRICTS_BY_REGION.get(region, []))


def is_valid_district(region: str, district: str) -> bool:
    """True if the district may be selected under the region.

    An empty district is always valid. Regions outside the catalogue
    accept any district.
    """
    if not district:
        return True
    if region not in DISTRICTS_BY_REGION:
        return bool(region)
    return district in DISTRICTS_BY_REGION[region]


class RegionDirectory:
    """Session-scoped lookup of service regions by name.

    Args:
        backend: Operations backend used to load the region list.
    """

    def __init__(self, backend: OperationsBackend) -> None:
        self._backend = backend
        self._regions: list[RegionRecord] | None = None
        self._lock = asyncio.Lock()
        self._epoch = Generation()

    @property
    def regions(self) -> list[RegionRecord]:
        return list(self._regions or [])

    async def load(self) -> list[RegionRecord]:
        """Load regions once; a failed load is retried on the next call."""
        async with self._lock:
            if self._regions is not None:
                return self._regions
            epoch = self._epoch.current
            try:
                regions = await self._backend.list_regions()
            except BackendError as exc:
                logger.warning("regions.load_failed", error=str(exc))
                return []
            if self._epoch.is_current(epoch):
                self._regions = regions
            return regions

    def clear(self) -> None:
        """Forget the loaded regions; a load in flight is not stored."""
        self._epoch.issue()
        self._regions = None

    async def resolve(self, name: str) -> RegionRecord | None:
        """Return the region with this name, or None if unknown."""
        if not name:
            return None
        for region in await self.load():
            if region.name == name:
                return region
        return None
