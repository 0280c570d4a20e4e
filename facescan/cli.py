#!/usr/bin/env python3
"""Command line interface for guided face capture and verification.

Usage:
    facescan register --output-dir faces/ --save-descriptor
    facescan verify --reference faces/alice.json
    facescan verify --reference faces/alice.json --remote http://host:8000/api/v1/verify
    facescan extract --image photo.jpg --output alice.json
    facescan compare alice.json candidate.json
    facescan crop --image photo.jpg --output portrait.jpg
    facescan serve --port 8000

Preview window controls:
    R      : Retry after an error
    Q/ESC  : Close the session
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import cv2

from .camera import Camera, CameraConfig
from .constants import get_api_config, get_capture_config, get_config
from .detection import FaceDetector
from .errors import FaceScanError
from .guidance import CaptureMode
from .session import CaptureSession, ModalState, SessionSnapshot

logger = logging.getLogger(__name__)

PREVIEW_WINDOW = "Face Scan - R: retry  Q: close"


async def run_session(session: CaptureSession, camera: Camera, preview: bool = True):
    """Run a capture session, optionally with an OpenCV preview window."""
    task = asyncio.ensure_future(session.run())
    if not preview:
        return await task

    from .overlay import draw_overlay

    try:
        while not task.done():
            frame = camera.current_frame()
            if frame is not None:
                cv2.imshow(PREVIEW_WINDOW, draw_overlay(frame.image, session.snapshot))
            key = cv2.waitKey(1) & 0xFF
            if key in (ord("q"), 27):
                session.close()
            elif key == ord("r"):
                session.retry()
            await asyncio.sleep(1 / 30)
    finally:
        cv2.destroyAllWindows()
    return await task


def _build_session(args, mode: CaptureMode, **kwargs) -> CaptureSession:
    detector = FaceDetector(backend=args.backend)
    camera = Camera(CameraConfig(device=args.camera_id))
    session = None

    def on_change(snapshot: SessionSnapshot) -> None:
        logger.info(f"[{snapshot.state.value}] {snapshot.message}")
        # Without a window nobody can press retry
        if snapshot.state is ModalState.ERROR and not args.preview:
            session.close()

    session = CaptureSession(mode, detector, camera, on_change=on_change, **kwargs)
    return session


def cmd_register(args):
    """Guided capture of an enrollment image."""
    from .submission import DirectoryCredentialStore

    extractor = None
    if args.save_descriptor:
        from .recognition import DescriptorExtractor
        extractor = DescriptorExtractor()
        extractor.load()

    store = DirectoryCredentialStore(args.output_dir, extractor=extractor, filename=args.name)
    session = _build_session(args, CaptureMode.REGISTER, credential_store=store)
    outcome = asyncio.run(run_session(session, session.frame_source, args.preview))

    if outcome.success:
        logger.info(f"✓ Registered face image: {outcome.stored_as}")
        return 0
    if outcome.error is not None:
        logger.error(f"✗ Registration failed: {outcome.error.message}")
    return 1


def cmd_verify(args):
    """Guided capture verified against a stored descriptor."""
    from .recognition import parse_descriptor_json
    from .submission import HttpVerifier, LocalVerifier

    try:
        reference = parse_descriptor_json(Path(args.reference).read_text())
    except (OSError, FaceScanError) as e:
        logger.error(f"Could not load reference descriptor {args.reference}: {e}")
        return 1

    if args.remote:
        verifier = HttpVerifier(args.remote, timeout=get_api_config().request_timeout)
    else:
        verifier = LocalVerifier()
        verifier.face_verifier.extractor.load()

    session = _build_session(args, CaptureMode.VERIFY, verifier=verifier, reference=reference)
    outcome = asyncio.run(run_session(session, session.frame_source, args.preview))

    if outcome.success:
        logger.info(f"✓ Verification successful (score {outcome.score * 100:.2f}%)")
        return 0
    if outcome.score is not None:
        logger.error(f"✗ Verification failed (score {outcome.score * 100:.2f}%)")
    elif outcome.error is not None:
        logger.error(f"✗ Verification failed: {outcome.error.message}")
    else:
        logger.error("✗ Verification cancelled")
    return 1


def cmd_extract(args):
    """Extract the descriptor of the single face in an image."""
    from .recognition import DescriptorExtractor, descriptor_to_list

    image = cv2.imread(args.image)
    if image is None:
        logger.error(f"Could not load image: {args.image}")
        return 1

    try:
        descriptor = DescriptorExtractor().extract(image)
    except FaceScanError as e:
        logger.error(f"✗ {e.message}")
        return 1

    payload = json.dumps(descriptor_to_list(descriptor))
    if args.output:
        Path(args.output).write_text(payload)
        logger.info(f"Saved {descriptor.size}-d descriptor to: {args.output}")
    else:
        print(payload)
    return 0


def cmd_compare(args):
    """Compare two stored descriptors."""
    from .recognition import DescriptorMatcher, parse_descriptor_json

    try:
        reference = parse_descriptor_json(Path(args.reference).read_text())
        candidate = parse_descriptor_json(Path(args.candidate).read_text())
        result = DescriptorMatcher(threshold=args.threshold).match(reference, candidate)
    except (OSError, FaceScanError) as e:
        logger.error(f"✗ {e}")
        return 1

    if args.json:
        print(json.dumps(result.to_dict()))
    else:
        logger.info(f"Distance: {result.distance:.4f}")
        logger.info(f"Score:    {result.score_percent}%")
        logger.info(f"Match:    {'yes' if result.is_match else 'no'}")
    return 0 if result.is_match else 2


def cmd_crop(args):
    """Crop an image to the portrait enrollment ratio."""
    from .postprocess import crop_to_aspect_ratio

    image = cv2.imread(args.image)
    if image is None:
        logger.error(f"Could not load image: {args.image}")
        return 1

    config = get_capture_config()
    ratio = args.ratio or config.target_aspect_ratio
    try:
        cropped = crop_to_aspect_ratio(image, ratio, config.crop_tolerance)
    except FaceScanError as e:
        logger.error(f"✗ {e.message}")
        return 1

    cv2.imwrite(args.output, cropped, [int(cv2.IMWRITE_JPEG_QUALITY), config.jpeg_quality])
    logger.info(f"Saved {cropped.shape[1]}x{cropped.shape[0]} image to: {args.output}")
    return 0


def cmd_serve(args):
    """Start the verification API server."""
    import uvicorn
    from .api import create_app

    config = get_api_config()
    host = args.host or config.host
    port = args.port or config.port
    app = create_app(preload=args.preload)

    logger.info("Starting Face Scan API")
    logger.info(f"  URL: http://{host}:{port}")
    logger.info(f"  Docs: http://{host}:{port}/docs")

    uvicorn.run(app, host=host, port=port, log_level="warning")
    return 0


def _add_session_arguments(parser):
    parser.add_argument("--camera-id", default="0", help="Camera device index, path or stream URL")
    parser.add_argument("--backend", "-b", default=None,
                        choices=FaceDetector.available_backends(),
                        help="Guidance detector backend (default from config)")
    parser.add_argument("--no-preview", dest="preview", action="store_false",
                        help="Run without the preview window")


def main():
    """Main entry point for the facescan CLI."""
    parser = argparse.ArgumentParser(
        prog="facescan",
        description="Guided face capture, descriptor extraction and verification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  facescan register --output-dir faces/ --name alice.jpg --save-descriptor
  facescan verify --reference faces/alice.json
  facescan extract --image photo.jpg --output alice.json
  facescan compare alice.json candidate.json
  facescan serve --port 8000
        """
    )
    parser.add_argument("--config", help="Path to config YAML")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Register command
    register_parser = subparsers.add_parser("register", help="Capture an enrollment image")
    register_parser.add_argument("--output-dir", "-o", default="data/faces", help="Directory for saved images")
    register_parser.add_argument("--name", "-n", default=None, help="File name for the saved image")
    register_parser.add_argument("--save-descriptor", action="store_true",
                                 help="Also save the face descriptor as JSON")
    _add_session_arguments(register_parser)

    # Verify command
    verify_parser = subparsers.add_parser("verify", help="Verify a live face against a descriptor")
    verify_parser.add_argument("--reference", "-r", required=True, help="Reference descriptor JSON file")
    verify_parser.add_argument("--remote", default=None, help="URL of a remote verify endpoint")
    _add_session_arguments(verify_parser)

    # Extract command
    extract_parser = subparsers.add_parser("extract", help="Extract a face descriptor from an image")
    extract_parser.add_argument("--image", "-i", required=True, help="Input image path")
    extract_parser.add_argument("--output", "-o", help="Output JSON path (default: stdout)")

    # Compare command
    compare_parser = subparsers.add_parser("compare", help="Compare two descriptor files")
    compare_parser.add_argument("reference", help="Reference descriptor JSON file")
    compare_parser.add_argument("candidate", help="Candidate descriptor JSON file")
    compare_parser.add_argument("--threshold", "-t", type=float, default=None,
                                help="Match threshold (default from config, lower = stricter)")
    compare_parser.add_argument("--json", action="store_true",
                                help="Print the match result as JSON")

    # Crop command
    crop_parser = subparsers.add_parser("crop", help="Crop an image to the enrollment aspect ratio")
    crop_parser.add_argument("--image", "-i", required=True, help="Input image path")
    crop_parser.add_argument("--output", "-o", required=True, help="Output image path")
    crop_parser.add_argument("--ratio", type=float, default=None, help="Target width/height ratio")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start API server")
    serve_parser.add_argument("--host", default=None, help="Host to bind to")
    serve_parser.add_argument("--port", "-p", type=int, default=None, help="Port to bind to")
    serve_parser.add_argument("--preload", action="store_true", help="Load models at startup")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    if args.config:
        get_config().reload(Path(args.config))

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    commands = {
        "register": cmd_register,
        "verify": cmd_verify,
        "extract": cmd_extract,
        "compare": cmd_compare,
        "crop": cmd_crop,
        "serve": cmd_serve,
    }

    handler = commands.get(args.command)
    sys.exit(handler(args))


if __name__ == "__main__":
    main()
