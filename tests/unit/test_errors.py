"""Tests for the error hierarchy and denial statuses."""

from kube_exec_controller.errors import (
    DENIAL_HTTP_MAP,
    KubeAPIError,
    KubeExecControllerError,
    MalformedRequestError,
    PermanentError,
    PodNotFoundError,
    RetryExhaustedError,
    build_denial_status,
    http_status_for,
)


class TestErrorHandling:
    def test_every_denial_is_forbidden(self):
        assert set(DENIAL_HTTP_MAP.values()) == {403}
        assert http_status_for("SOMETHING_ELSE") == 403

    def test_build_denial_status(self):
        status = build_denial_status("INVALID_ANNOTATION_VALUE", "bad value")
        assert status.code == 403
        assert status.message == "bad value"
        assert status.reason == "INVALID_ANNOTATION_VALUE"

    def test_base_error_to_dict(self):
        error = KubeExecControllerError("went wrong", details={"pod": "web-0"})
        assert error.error_code == "KUBEEXECCONTROLLERERROR"
        assert error.to_dict() == {
            "error_code": "KUBEEXECCONTROLLERERROR",
            "message": "went wrong",
            "details": {"pod": "web-0"},
        }
        assert str(error) == "KUBEEXECCONTROLLERERROR: went wrong"

    def test_malformed_request_code(self):
        assert MalformedRequestError("oops").error_code == "MALFORMED_REQUEST"

    def test_pod_not_found_is_a_kube_api_error(self):
        error = PodNotFoundError("default", "web-0")
        assert isinstance(error, KubeAPIError)
        assert error.status == 404
        assert error.error_code == "POD_NOT_FOUND"
        assert error.details == {"namespace": "default", "name": "web-0"}

    def test_permanent_and_exhausted_keep_their_cause(self):
        cause = KubeAPIError("down", status=503)
        assert PermanentError(cause).cause is cause
        exhausted = RetryExhaustedError(3, 1.25, cause)
        assert exhausted.last_error is cause
        assert exhausted.details == {"attempts": 3, "elapsed_seconds": 1.25}
