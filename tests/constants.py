class URLs:
    REGISTER = "/auth/register"
    LOGIN = "/auth/login"
    USER_ME = "/user/me"
    CHANGE_PASSWORD = "/user/change_password"
    PUBLIC_UPLOAD = "/api/public/files/upload"
    PUBLIC_DOWNLOAD = "/api/public/files/download/{}"
    PUBLIC_INFO = "/api/public/files/{}"
    USER_UPLOAD = "/api/user/files/upload"
    USER_DOWNLOAD = "/api/user/files/download/{}"
    USER_FILES = "/api/user/files"
    USER_FILE = "/api/user/files/{}"
    SHARE_UPLOAD = "/api/files/upload"
    SHARE_DOWNLOAD = "/api/files/download/{}"
