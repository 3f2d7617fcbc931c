"""Example configuration written by `kbflash init`."""

EXAMPLE_CONFIG = """\
# kbflash configuration
#
# Every value can be overridden from the environment, e.g.
#   KBFLASH_DEVICE__NAME=XIAO-SENSE kbflash

keyboard:
  # Required: name of your keyboard
  name: corne

  # Keyboard type: "split" or "uni"
  type: split

  # For split keyboards, the side names (flashed in this order)
  sides: [left, right]

build:
  # Enable firmware building (false for flash-only mode)
  enabled: true

  # Build mode: "docker" (recommended) or "native"
  # Docker mode only requires Docker installed, no ZMK toolchain needed
  mode: docker

  # --- Docker mode settings ---
  image: zmkfirmware/zmk-dev-arm:stable

  # Your ZMK board (e.g. nice_nano_v2, seeeduino_xiao_ble)
  board: nice_nano_v2

  # Your ZMK shield, without the _left/_right suffix
  shield: corne

  # --- Native mode settings (mode: native) ---
  # command: ./build.sh
  # args: ["{{side}}"]

  # Directory containing your zmk-config (docker) or to run the build in (native)
  working_dir: .

  # Where firmware files are written and discovered
  firmware_dir: ./firmware

  # Glob pattern matching firmware files
  file_pattern: "*.uf2"

device:
  # Required: volume name shown when the keyboard enters its bootloader
  # Common values: NICENANO, RPI-RP2, XIAO-SENSE
  name: NICENANO

  # How often to poll for the device
  poll_interval: 500ms

  # Give up waiting for the device after this long
  wait_timeout: 5m

  # Override where volumes are mounted (defaults to /Volumes or /run/media/$USER)
  # mount_roots: [/mnt/usb]

log_level: WARNING
"""
