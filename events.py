CONNECTED = "connected"  # server -> client on accept, carries the connection id

JOIN_AS_CAMERA = "join-as-camera"
JOINED_AS_CAMERA = "joined-as-camera"
JOIN_AS_MONITOR = "join-as-monitor"
JOINED_AS_MONITOR = "joined-as-monitor"

CAMERA_ONLINE = "camera-online"
CAMERA_OFFLINE = "camera-offline"
PEER_JOIN_REQUEST = "peer-join-request"  # camera only

OFFER = "offer"
ANSWER = "answer"
ICE_CANDIDATE = "ice-candidate"
SIGNAL_EVENTS = (OFFER, ANSWER, ICE_CANDIDATE)

STATUS_UPDATE = "status-update"
STATUS_CHANGED = "status-changed"

ERROR = "error"

ROLE_CAMERA = "camera"
ROLE_MONITOR = "monitor"

STATUS_UNKNOWN = "unknown"
STATUS_SLEEPING = "sleeping"
STATUS_AWAKE = "awake"
