import os
import logging
from flask import Flask, request, jsonify
import base64
import json

from .. import crd
from ..errors import ValidationError
from ..reconcile.group import parse_group_spec

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

WEBHOOK_PORT = int(os.environ.get('WEBHOOK_PORT', 8443))


def create_response(uid: str, allowed: bool, message: str = None, patch: list = None) -> dict:
    """Create an AdmissionReview response."""
    response = {
        "uid": uid,
        "allowed": allowed,
    }
    if message:
        response["status"] = {"message": message}
    if patch:
        response["patchType"] = "JSONPatch"
        response["patch"] = base64.b64encode(json.dumps(patch).encode()).decode()
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "response": response
    }


def create_error_response(message: str, uid: str = "") -> dict:
    """Create a standardized error response for the admission webhook."""
    return create_response(uid, False, message)


def validate_squad(squad: dict) -> list:
    """
    Check a squad object the way the reconciler will read it.

    Returns:
        list: human readable problems, empty when the squad is valid
    """
    problems = []
    spec = squad.get("spec") or {}
    if not isinstance(spec, dict):
        return ["spec must be a mapping of group name to group spec"]
    for group_name, raw in spec.items():
        if raw is not None and not isinstance(raw, dict):
            problems.append(f"Group {group_name}: expected an object with baseName and replicas")
            continue
        try:
            group_spec = parse_group_spec(group_name, raw)
            if group_spec is not None:
                group_spec.desired_replicas(group_name)
        except ValidationError as e:
            problems.append(str(e))
    return problems


def start_webhook_server():
    """Start the webhook server with SSL configuration."""
    try:
        cert_path = os.environ.get('CERT_PATH', '/etc/webhook/certs/tls.crt')
        key_path = os.environ.get('KEY_PATH', '/etc/webhook/certs/tls.key')

        if not os.path.exists(cert_path) or not os.path.exists(key_path):
            logger.error("SSL certificate or key not found")
            raise FileNotFoundError("SSL certificate or key not found")

        app.run(
            host='0.0.0.0',
            port=WEBHOOK_PORT,
            ssl_context=(cert_path, key_path),
            threaded=True
        )
    except Exception as e:
        logger.error(f"Failed to start webhook server: {str(e)}")
        raise


def _read_review():
    """Return (uid, request_data) from the AdmissionReview body."""
    request_info = request.get_json(silent=True)
    if not request_info:
        raise KeyError("request body")
    request_data = request_info.get("request")
    if not request_data:
        raise KeyError("request")
    return request_data.get("uid", ""), request_data


@app.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint for the webhook server."""
    return jsonify({"status": "healthy"}), 200


@app.route('/validate', methods=['POST'])
def validate():
    """Reject squads the reconciler could not apply."""
    uid = ""
    try:
        uid, request_data = _read_review()
        squad = request_data["object"]
        problems = validate_squad(squad)
        name = squad.get("metadata", {}).get("name", "unknown")
        if problems:
            message = "; ".join(problems)
            logger.info(f"Rejected squad {name}: {message}")
            return jsonify(create_response(uid, False, message))
        return jsonify(create_response(uid, True))
    except KeyError as e:
        error_msg = f"Missing required field in request: {str(e)}"
        logger.warning(error_msg)
        return jsonify(create_error_response(error_msg, uid))


@app.route('/mutate', methods=['POST'])
def mutate():
    """Add controller labels and the finalizer to squads on CREATE and UPDATE."""
    uid = ""
    try:
        uid, request_data = _read_review()
        squad = request_data["object"]
        operation = request_data.get("operation", "").upper()
        metadata = squad.get("metadata") or {}

        labels = dict(metadata.get("labels") or {})
        labels["managed-by"] = "squad-controller"
        patch = [
            {
                "op": "add",
                "path": "/metadata/labels",
                "value": labels
            }
        ]

        if operation in ["CREATE", "UPDATE"]:
            # Skip adding finalizer if resource is being deleted
            if "deletionTimestamp" in metadata:
                logger.info(f"Squad {metadata.get('name', 'unknown')} is being deleted, skipping finalizer")
            elif crd.FINALIZER_NAME not in (metadata.get("finalizers") or []):
                if not metadata.get("finalizers"):
                    patch.append({
                        "op": "add",
                        "path": "/metadata/finalizers",
                        "value": [crd.FINALIZER_NAME]
                    })
                else:
                    patch.append({
                        "op": "add",
                        "path": "/metadata/finalizers/-",
                        "value": crd.FINALIZER_NAME
                    })

        logger.info(f"Successfully processed mutation request for {metadata.get('name', 'unknown')}")
        return jsonify(create_response(uid, True, patch=patch))

    except KeyError as e:
        error_msg = f"Missing required field in request: {str(e)}"
        logger.error(error_msg)
        return jsonify(create_error_response(error_msg, uid))
