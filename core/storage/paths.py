"""Document path layout of the store."""

PROJECTS = "projects"
USERS = "users"
HISTORY = "history"
METADATA_HISTORY = "metadata_history"
IDEAS = "ideas"


def project_path(project_id: str) -> str:
    return f"{PROJECTS}/{project_id}"


def collection_path(project_id: str, collection: str) -> str:
    return f"{PROJECTS}/{project_id}/{collection}"


def entity_path(project_id: str, collection: str, entity_id: str) -> str:
    return f"{PROJECTS}/{project_id}/{collection}/{entity_id}"


def entity_history_path(project_id: str, collection: str, entity_id: str) -> str:
    # Manuscripts use the same layout: projects/{p}/manuscripts/{m}/history
    return f"{entity_path(project_id, collection, entity_id)}/{HISTORY}"


def metadata_history_path(project_id: str) -> str:
    return f"{PROJECTS}/{project_id}/{METADATA_HISTORY}"


def user_path(user_id: str) -> str:
    return f"{USERS}/{user_id}"


def ideas_path(user_id: str) -> str:
    return f"{USERS}/{user_id}/{IDEAS}"
