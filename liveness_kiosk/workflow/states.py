from enum import Enum


class WorkflowState(str, Enum):
    INITIALIZING = "INITIALIZING"
    READY = "READY"

    NO_FACE = "NO_FACE"
    MULTIPLE_FACES = "MULTIPLE_FACES"
    FACE_DETECTED = "FACE_DETECTED"
    FACE_REAL = "FACE_REAL"

    FACE_TOO_FAR = "FACE_TOO_FAR"
    FACE_TOO_CLOSE = "FACE_TOO_CLOSE"
    FACE_NOT_CENTERED = "FACE_NOT_CENTERED"

    FACE_STABILIZING = "FACE_STABILIZING"
    FACE_STABLE = "FACE_STABLE"

    LIVENESS_CHALLENGE = "LIVENESS_CHALLENGE"

    FACE_SPOOFED = "FACE_SPOOFED"
    FACE_SUSPICIOUS = "FACE_SUSPICIOUS"
    SPOOF_SUSPECTED = "SPOOF_SUSPECTED"

    CAPTURING = "CAPTURING"
    PROCESSING = "PROCESSING"
    ANALYZING = "ANALYZING"

    SUCCESS = "SUCCESS"

    FAILED_NETWORK = "FAILED_NETWORK"
    FAILED_SPOOF = "FAILED_SPOOF"
    FAILED_CAMERA = "FAILED_CAMERA"
    FAILED_PERMISSION = "FAILED_PERMISSION"
    FAILED_OTHER = "FAILED_OTHER"

    TIMEOUT_DETECTION = "TIMEOUT_DETECTION"
    TIMEOUT_REGISTRATION = "TIMEOUT_REGISTRATION"

    FACE_OUT_OF_BOUNDS = "FACE_OUT_OF_BOUNDS"
    FACE_WARNING = "FACE_WARNING"

    @property
    def default_message(self) -> str:
        return DEFAULT_MESSAGES[self]

    @property
    def is_final(self) -> bool:
        return self in FINAL_STATES

    @property
    def is_error(self) -> bool:
        return self in ERROR_STATES

    @property
    def is_processing(self) -> bool:
        return self in PROCESSING_STATES

    @property
    def requires_confirmation(self) -> bool:
        return not (self.is_error or self in IMMEDIATE_STATES)


DEFAULT_MESSAGES = {
    WorkflowState.INITIALIZING: "Initializing camera...",
    WorkflowState.READY: "Position your face in the oval",
    WorkflowState.NO_FACE: "Look at the camera",
    WorkflowState.MULTIPLE_FACES: "Only one face should be visible",
    WorkflowState.FACE_DETECTED: "Face detected",
    WorkflowState.FACE_REAL: "Face verified as real",
    WorkflowState.FACE_TOO_FAR: "Move closer to camera",
    WorkflowState.FACE_TOO_CLOSE: "Move away from camera",
    WorkflowState.FACE_NOT_CENTERED: "Center your face in oval",
    WorkflowState.FACE_STABILIZING: "Hold still...",
    WorkflowState.FACE_STABLE: "Perfect! Processing...",
    WorkflowState.LIVENESS_CHALLENGE: "Blink your eyes",
    WorkflowState.FACE_SPOOFED: "Spoof detected! Use real face",
    WorkflowState.FACE_SUSPICIOUS: "Suspicious activity detected. Please hold steady.",
    WorkflowState.SPOOF_SUSPECTED: "Please ensure you're using a real face",
    WorkflowState.CAPTURING: "Capturing face...",
    WorkflowState.PROCESSING: "Registering your face...",
    WorkflowState.ANALYZING: "Analyzing... Please hold steady.",
    WorkflowState.SUCCESS: "Face ID registered successfully!",
    WorkflowState.FAILED_NETWORK: "Network error occurred",
    WorkflowState.FAILED_SPOOF: "Spoof detection failed",
    WorkflowState.FAILED_CAMERA: "Camera error",
    WorkflowState.FAILED_PERMISSION: "Camera permission denied",
    WorkflowState.FAILED_OTHER: "Registration failed",
    WorkflowState.TIMEOUT_DETECTION: "Face detection timeout",
    WorkflowState.TIMEOUT_REGISTRATION: "Registration timeout",
    WorkflowState.FACE_OUT_OF_BOUNDS: "Position face in oval guide",
    WorkflowState.FACE_WARNING: "Warning: possible spoof detected",
}

FINAL_STATES = frozenset({
    WorkflowState.SUCCESS,
    WorkflowState.FAILED_NETWORK,
    WorkflowState.FAILED_SPOOF,
    WorkflowState.FAILED_CAMERA,
    WorkflowState.FAILED_PERMISSION,
    WorkflowState.FAILED_OTHER,
    WorkflowState.TIMEOUT_DETECTION,
    WorkflowState.TIMEOUT_REGISTRATION,
})

# SUCCESS is final but not an error; FACE_SPOOFED is an error the flow can leave
ERROR_STATES = (FINAL_STATES - {WorkflowState.SUCCESS}) | {WorkflowState.FACE_SPOOFED}

PROCESSING_STATES = frozenset({
    WorkflowState.CAPTURING,
    WorkflowState.PROCESSING,
    WorkflowState.FACE_STABILIZING,
    WorkflowState.ANALYZING,
    WorkflowState.INITIALIZING,
})

IMMEDIATE_STATES = frozenset({
    WorkflowState.SUCCESS,
    WorkflowState.INITIALIZING,
    WorkflowState.LIVENESS_CHALLENGE,
    WorkflowState.FACE_REAL,
})

DETECTION_TIMEOUT_STATES = frozenset({
    WorkflowState.READY,
    WorkflowState.NO_FACE,
    WorkflowState.FACE_DETECTED,
})
