default_config = {
    "_section_hint": (
        "Configuration for udiskr, a small daemon that mounts removable "
        "block devices through UDisks2 and reports them as notifications."
    ),
    "logging": {
        "_section_hint": "Diagnostic output. Logs always go to standard error.",
        "level": "INFO",
        "level_hint": "One of DEBUG, INFO, WARNING or ERROR.",
        "log_file": True,
        "log_file_hint": (
            "Also write JSON logs to $XDG_STATE_HOME/udiskr/udiskr.log "
            "(rotated at 1 MiB, two backups)."
        ),
    },
    "udisks": {
        "_section_hint": "How devices are discovered and mounted.",
        "service": "org.freedesktop.UDisks2",
        "service_hint": "Bus name of the device-management service.",
        "manager_path": "/org/freedesktop/UDisks2/Manager",
        "manager_path_hint": (
            "Object answering the startup liveness ping. udiskr exits if "
            "the ping fails."
        ),
        "block_devices_prefix": "/org/freedesktop/UDisks2/block_devices/",
        "block_devices_prefix_hint": (
            "Only objects below this path are mounted. Drives, jobs and "
            "other UDisks2 objects are ignored."
        ),
        "suppressed_mount_errors": ["org.freedesktop.UDisks2.Error.AlreadyMounted"],
        "suppressed_mount_errors_hint": (
            "Mount errors that are expected and never logged, such as a "
            "device that another program already mounted."
        ),
    },
    "notifications": {
        "_section_hint": "Desktop notifications for mount and unmount events.",
        "app_name": "udiskr",
        "app_name_hint": "Application name shown by the notification server.",
        "app_icon": "",
        "app_icon_hint": "Icon name for notifications, empty for none.",
        "expire_timeout": 30000,
        "expire_timeout_hint": "How long a notification stays visible, in milliseconds.",
        "mounted_summary": "block device mounted",
        "unmounted_summary": "block device unmounted",
        "open_label": "Open",
        "open_label_hint": "Label of the button that opens the mount point.",
    },
    "actions": {
        "_section_hint": "What happens when a mounted notification is clicked.",
        "open_command": "xdg-open",
        "open_command_hint": (
            "Command used to open the mount point. The directory is passed "
            "as the last argument."
        ),
    },
}
