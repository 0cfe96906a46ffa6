"""Stand-in for the household directory service, serving rosters from JSON stubs

Run with: uvicorn mock.household_directory.main:app --port 8001
"""

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pathlib import Path
import json
import os

app = FastAPI(title="Mock Household Directory", version="1.0.0")

STUB_DIR = Path(os.environ.get("HOUSEHOLD_STUB_DIR", Path(__file__).resolve().parents[2] / "household_stub"))


def load_roster(household_id: str) -> dict:
    stub = STUB_DIR / f"roster_{household_id}.json"
    if not stub.exists():
        raise HTTPException(status_code=404, detail=f"household {household_id} not found")
    return json.loads(stub.read_text())


@app.get("/health")
def health():
    return {"status": "ok", "households": sorted(p.stem.removeprefix("roster_") for p in STUB_DIR.glob("roster_*.json"))}


@app.get("/households/{household_id}/roster")
def get_roster(household_id: str):
    return JSONResponse(content=load_roster(household_id))


@app.get("/households/{household_id}/members/{member_id}")
def get_member(household_id: str, member_id: str):
    roster = load_roster(household_id)
    people = [roster.get("created_by") or {}] + roster.get("members", [])
    for person in people:
        if person.get("id") == member_id:
            return {"household_id": household_id, "id": member_id, "name": person.get("name")}
    raise HTTPException(status_code=404, detail=f"member {member_id} not in household {household_id}")
