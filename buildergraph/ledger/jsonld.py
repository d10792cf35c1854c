"""JSON-LD converters for the assets committed to the ledger.

Each converter takes a plain mapping with snake_case keys (the shape produced
by the storage models' ``to_dict``) and returns a document with an
``@context`` and a single-node ``@graph``. Timestamps come from the caller so
the same record always converts to the same document.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Optional

from buildergraph.utils import slugify, utcnow

BASE_IRI = "https://buildergraph.com"

SCHEMA_CONTEXT = {
    "schema": "https://schema.org/",
    "prov": "http://www.w3.org/ns/prov#",
}
PERSON_CONTEXT = {
    "schema": "https://schema.org/",
    "foaf": "http://xmlns.com/foaf/0.1/",
    "prov": "http://www.w3.org/ns/prov#",
}


def _iso(value: Optional[datetime]) -> str:
    return (value or utcnow()).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _property(name: str, value: Any, key: str = "schema:name") -> dict:
    return {"@type": "schema:PropertyValue", key: name, "schema:value": value}


def _document(node: dict, context: dict = SCHEMA_CONTEXT) -> dict:
    return {"@context": dict(context), "@graph": [node]}


# ---------------------------------------------------------------------------
# Profile -> schema:Person
# ---------------------------------------------------------------------------

def profile_to_jsonld(profile: Mapping[str, Any], generated_at: Optional[datetime] = None) -> dict:
    timestamp = _iso(generated_at)
    username = profile["username"]

    person: dict[str, Any] = {
        "@type": ["schema:Person", "foaf:Person", "prov:Agent"],
        "@id": f"{BASE_IRI}/user/{username}",
        "schema:name": profile["full_name"],
        "foaf:name": profile["full_name"],
        "schema:alternateName": username,
        "foaf:nick": username,
        "schema:email": profile["email"],
        "schema:identifier": [
            _property("username", username, key="schema:propertyID"),
            _property("platform", "buildergraph", key="schema:propertyID"),
        ],
        "schema:dateCreated": timestamp,
        "prov:generatedAtTime": timestamp,
    }

    if profile.get("location"):
        person["schema:address"] = {
            "@type": "schema:PostalAddress",
            "schema:addressLocality": profile["location"],
        }
    if profile.get("bio"):
        person["schema:description"] = profile["bio"]
    if profile.get("skills"):
        person["schema:knowsAbout"] = list(profile["skills"])
    if profile.get("languages"):
        person["schema:knowsLanguage"] = list(profile["languages"])
    if profile.get("specializations"):
        person["schema:hasOccupation"] = [
            {"@type": "schema:Occupation", "schema:name": s} for s in profile["specializations"]
        ]
    if profile.get("experience"):
        person["schema:additionalProperty"] = _property("yearsExperience", profile["experience"])
    if profile.get("github_username"):
        github = profile["github_username"]
        person["schema:sameAs"] = f"https://github.com/{github}"
        person["foaf:account"] = {
            "@type": "foaf:OnlineAccount",
            "foaf:accountServiceHomepage": "https://github.com",
            "foaf:accountName": github,
        }

    return _document(person, PERSON_CONTEXT)


# ---------------------------------------------------------------------------
# Project -> schema:SoftwareSourceCode
# ---------------------------------------------------------------------------

def project_iri(project: Mapping[str, Any]) -> str:
    """Stable IRI for a project: ``{base}/project/{slug}-{id}``."""
    return f"{BASE_IRI}/project/{slugify(project['name'])}-{project['id']}"


def project_to_jsonld(
    project: Mapping[str, Any],
    owner_ual: Optional[str] = None,
    *,
    keywords: Optional[list[str]] = None,
    generated_at: Optional[datetime] = None,
) -> dict:
    """Build the project asset, embedding score, breakdown and analysis hash."""
    timestamp = _iso(generated_at)
    project_id = project_iri(project)

    node: dict[str, Any] = {
        "@type": ["schema:SoftwareSourceCode", "schema:CreativeWork", "prov:Entity"],
        "@id": project_id,
        "schema:name": project["name"],
        "schema:description": project.get("description") or "No description available",
        "schema:codeRepository": project.get("repository_url") or "",
        "schema:dateCreated": timestamp,
        "schema:datePublished": timestamp,
        "prov:generatedAtTime": timestamp,
        "schema:identifier": _property("projectId", project_id, key="schema:propertyID"),
    }

    if project.get("tech_stack"):
        node["schema:programmingLanguage"] = list(project["tech_stack"])
    if project.get("category"):
        node["schema:applicationCategory"] = project["category"]
    if keywords:
        node["schema:keywords"] = list(keywords)
    if project.get("live_url"):
        node["schema:url"] = project["live_url"]
    if project.get("license"):
        node["schema:license"] = project["license"]
    if project.get("stars") is not None:
        node["schema:interactionStatistic"] = {
            "@type": "schema:InteractionCounter",
            "schema:interactionType": "https://schema.org/LikeAction",
            "schema:userInteractionCount": project["stars"],
        }

    owner = owner_ual or project.get("owner_ual")
    if owner:
        node["schema:creator"] = {"@id": owner}
        node["prov:wasAttributedTo"] = {"@id": owner}

    if project.get("score") is not None:
        extra = [
            _property("score", project["score"]),
            _property("scoreBreakdown", json.dumps(project.get("score_breakdown") or {}, sort_keys=True)),
        ]
        # Only the hash is published; the narrative text stays in the local store.
        if project.get("analysis_hash"):
            extra.append(_property("aiAnalysis", project["analysis_hash"]))
        node["schema:additionalProperty"] = extra

    return _document(node)


# ---------------------------------------------------------------------------
# Endorsement -> schema:Review
# ---------------------------------------------------------------------------

def endorsement_to_jsonld(
    endorsement: Mapping[str, Any],
    *,
    target_name: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> dict:
    timestamp = _iso(generated_at)

    node: dict[str, Any] = {
        "@type": ["schema:Review", "schema:Endorsement", "prov:Entity"],
        "@id": f"{BASE_IRI}/endorsement/{endorsement['id']}",
        "schema:author": {
            "@id": endorsement["endorser_ual"],
            "schema:name": endorsement.get("endorser_name"),
            "schema:identifier": endorsement.get("endorser_username"),
        },
        "schema:itemReviewed": {
            "@id": endorsement["target_id"],
            "schema:name": target_name or endorsement.get("target_username"),
        },
        "schema:reviewRating": {
            "@type": "schema:Rating",
            "schema:ratingValue": endorsement["rating"],
            "schema:bestRating": 5,
            "schema:worstRating": 1,
        },
        "schema:reviewBody": endorsement["message"],
        "schema:dateCreated": timestamp,
        "prov:generatedAtTime": timestamp,
    }

    if endorsement["target_type"] == "skill":
        node["schema:about"] = {"@type": "schema:Thing", "schema:name": endorsement.get("skill_name")}
    else:
        node["schema:about"] = {
            "@type": "schema:SoftwareSourceCode",
            "@id": endorsement["target_id"],
        }

    node["schema:additionalProperty"] = [
        _property("endorsementType", endorsement["target_type"], key="schema:propertyID"),
        _property("tracStaked", endorsement["trac_staked"], key="schema:propertyID"),
        _property(
            "status",
            "withdrawn" if endorsement.get("withdrawn_at") else "active",
            key="schema:propertyID",
        ),
    ]

    return _document(node)
